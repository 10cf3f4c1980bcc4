"""
Book Model

A catalog entry ingested from Google Books.

The internal integer id is assigned on first persistence; google_books_id
is the stable external identifier and the key for every upsert. A book
is never duplicated: re-ingesting the same volume updates the row.

authors and categories are stored as JSON lists so that author order is
preserved exactly as the external source reports it.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.favorite import Favorite


class Book(Base):
    """
    Book model.

    Table: books

    Indexes:
    - google_books_id: Unique index for upserts and detail lookups
    - title: Index for listing sorted by title
    - average_rating: Index for listing sorted by rating
    """

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True)

    google_books_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
        comment="Google Books volume ID",
    )

    title: Mapped[str] = mapped_column(
        String(500),
        index=True,
        nullable=False,
    )

    authors: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
        comment="Author names in the order reported by the source",
    )

    # May contain HTML markup from the source
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    publisher: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Free-form: "2008", "2008-08", "2008-08-01" all occur
    published_date: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="Publication date as reported by the source (not normalized)",
    )

    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    categories: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    language: Mapped[str | None] = mapped_column(String(16), nullable=True)

    isbn_10: Mapped[str | None] = mapped_column(String(16), nullable=True)
    isbn_13: Mapped[str | None] = mapped_column(String(16), nullable=True)

    thumbnail: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    small_thumbnail: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    average_rating: Mapped[float | None] = mapped_column(
        Numeric(3, 2, asdecimal=False),
        index=True,
        nullable=True,
        comment="Average rating (0.00-5.00), null when unrated",
    )

    ratings_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    preview_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    info_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # -------------------------------------------------------------------------
    # Timestamps
    # -------------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------
    favorites: Mapped[list["Favorite"]] = relationship(
        "Favorite",
        back_populates="book",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"Book(id={self.id}, google_books_id='{self.google_books_id}', "
            f"title='{self.title}')"
        )
