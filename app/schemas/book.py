"""
Book Pydantic Schemas

Response shapes for books, listings, search and suggestions.

BookResponse is built from the ORM model (from_attributes) and also from
search index documents, which carry two extra facet fields.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import PaginationMeta


class BookResponse(BaseModel):
    """A book as returned by every endpoint."""

    id: int | None = Field(
        default=None,
        description="Internal ID (absent for a book that could not be stored)",
        examples=[42],
    )
    google_books_id: str = Field(..., examples=["zyTCAlFPjgYC"])
    title: str = Field(..., examples=["Eloquent JavaScript"])
    authors: list[str] = Field(default_factory=list, examples=[["Marijn Haverbeke"]])
    description: str | None = None
    publisher: str | None = None
    published_date: str | None = Field(default=None, examples=["2018-12-04"])
    page_count: int | None = None
    categories: list[str] = Field(default_factory=list)
    language: str | None = Field(default=None, examples=["en"])
    isbn_10: str | None = None
    isbn_13: str | None = None
    thumbnail: str | None = None
    small_thumbnail: str | None = None
    average_rating: float | None = Field(default=None, ge=0, le=5)
    ratings_count: int | None = None
    preview_link: str | None = None
    info_link: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


def book_to_dict(book: Any) -> dict[str, Any]:
    """Serialize a Book model (or normalized field dict) to a JSON-ready dict."""
    if isinstance(book, dict):
        return BookResponse.model_validate(book).model_dump(mode="json")
    return BookResponse.model_validate(book, from_attributes=True).model_dump(mode="json")


class BookListData(BaseModel):
    """Data block of GET /books and GET /favorites."""

    books: list[dict[str, Any]]
    pagination: PaginationMeta


class BookSearchData(BaseModel):
    """Data block of GET /books/search."""

    books: list[dict[str, Any]]
    pagination: PaginationMeta
    source: str = Field(
        ...,
        description="Which backends produced the result",
        examples=["hybrid", "index-only-fallback"],
    )
    facets: dict[str, dict[str, int]] = Field(default_factory=dict)
    new_books_indexed: int = 0
    index_count: int = 0
    external_count: int = 0
    combined_count: int = 0


class BookDetailData(BaseModel):
    """Data block of GET /books/{google_books_id}."""

    book: dict[str, Any]
    is_favorited: bool = False


SuggestionSource = Literal["external-live", "index-fallback", "local-fallback"]


class SuggestionsData(BaseModel):
    """Data block of GET /books/suggestions."""

    suggestions: list[str]
    query: str
    source: SuggestionSource
