"""
Books Router

Public book endpoints:
- GET /books: paginated, sorted listing of stored books (cached)
- GET /books/search: hybrid search over the index and Google Books
- GET /books/suggestions: autocomplete with a three-tier fallback
- GET /books/{google_books_id}: detail, fetched and stored on first view

Admin:
- DELETE /books/{book_id}: remove a book (and its index document)

Read endpoints never fail because Google Books or the search index is
down; they degrade to whatever source still answers.
"""

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.dependencies import (
    BookStoreDep,
    CacheDep,
    FavoritesDep,
    GoogleBooksDep,
    HybridSearchDep,
    IndexDep,
    OptionalUser,
    Pagination,
    SuperUser,
)
from app.schemas import (
    BookDetailData,
    BookListData,
    BookSearchData,
    Envelope,
    PaginationMeta,
    SuggestionsData,
    book_to_dict,
)
from app.services.book_sync import book_detail_cache_key
from app.services.cache import make_cache_key
from app.services.google_books import normalize_volume
from app.services.hybrid_search import SOURCE_EMPTY
from app.services.rate_limiter import SEARCH_LIMIT, limiter
from app.services.search_index import SearchIndexError

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(
    prefix="/books",
    tags=["Books"],
    responses={
        404: {"description": "Book not found"},
    },
)

CACHE_STATUS_HEADER = "X-Cache-Status"


# =============================================================================
# Listing
# =============================================================================

@router.get(
    "",
    response_model=Envelope[BookListData],
    summary="List stored books",
    description="Paginated list of every stored book, newest first by default.",
)
@limiter.limit(settings.rate_limit_default)
def list_books(
    request: Request,
    response: Response,
    store: BookStoreDep,
    cache: CacheDep,
    pagination: Pagination,
    sort: Literal["created_at", "title", "average_rating"] = Query(
        default="created_at",
        description="Sort column",
    ),
    order: Literal["asc", "desc"] = Query(default="desc", description="Sort direction"),
) -> Envelope[BookListData]:
    cache_key = make_cache_key(
        "books_index",
        page=pagination.page,
        per_page=pagination.per_page,
        sort=sort,
        order=order,
    )
    ttl = settings.cache_ttl_book_listing
    response.headers["Cache-Control"] = f"public, max-age={ttl}"

    cached = cache.get(cache_key)
    if cached is not None:
        response.headers[CACHE_STATUS_HEADER] = "HIT"
        return Envelope(data=BookListData.model_validate(cached))

    books, total = store.list_books(pagination.page, pagination.per_page, sort, order)
    data = BookListData(
        books=[book_to_dict(book) for book in books],
        pagination=PaginationMeta.build(pagination.page, pagination.per_page, total),
    )

    cache.set(cache_key, data.model_dump(mode="json"), ttl)
    response.headers[CACHE_STATUS_HEADER] = "MISS"
    return Envelope(data=data)


# =============================================================================
# Search & Suggestions
# =============================================================================
# Declared before /{google_books_id} so the literal paths win.

@router.get(
    "/search",
    response_model=Envelope[BookSearchData],
    summary="Hybrid book search",
    description="""
    Search the index and Google Books at once.

    Books Google returns that are not stored yet are saved and indexed on
    the fly. `source` tells which backends answered:
    `hybrid`, `index-only-fallback`, `external-only-fallback` or
    `empty-error-fallback`.
    """,
)
@limiter.limit(SEARCH_LIMIT)
def search_books(
    request: Request,
    search: HybridSearchDep,
    q: str = Query(..., min_length=1, max_length=200, description="Search query"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=40),
) -> Envelope[BookSearchData]:
    result = search.search(q, page, per_page)

    data = BookSearchData(
        books=result.books,
        pagination=PaginationMeta(
            current_page=result.current_page,
            per_page=per_page,
            total=result.total_count,
            total_pages=result.total_pages,
        ),
        source=result.source,
        facets=result.facets,
        new_books_indexed=result.new_books_indexed,
        index_count=result.index_count,
        external_count=result.external_count,
        combined_count=result.combined_count,
    )

    message = None
    if result.source == SOURCE_EMPTY:
        message = "Search is temporarily unavailable"
    return Envelope(data=data, message=message)


@router.get(
    "/suggestions",
    response_model=Envelope[SuggestionsData],
    summary="Autocomplete suggestions",
    description="""
    Title and author suggestions for a partial query.

    Tries Google Books first (`external-live`). When Google Books fails or
    has no matches the search index answers (`index-fallback`), and when
    the index is down a substring match on stored books (`local-fallback`).
    """,
)
@limiter.limit(SEARCH_LIMIT)
def get_suggestions(
    request: Request,
    google_books: GoogleBooksDep,
    index: IndexDep,
    store: BookStoreDep,
    q: str = Query(..., min_length=1, max_length=100, description="Partial query"),
    limit: int = Query(default=5, ge=1, le=10),
) -> Envelope[SuggestionsData]:
    suggestions = google_books.get_suggestions(q, limit)
    source = "external-live"

    if not suggestions:
        try:
            suggestions = index.suggest(q, limit)
            source = "index-fallback"
        except SearchIndexError as e:
            logger.warning(f"Index suggestions failed for '{q}', using local store: {e}")
            suggestions = store.suggest_local(q, limit)
            source = "local-fallback"

    return Envelope(data=SuggestionsData(suggestions=suggestions, query=q, source=source))


# =============================================================================
# Detail
# =============================================================================

@router.get(
    "/{google_books_id}",
    response_model=Envelope[BookDetailData],
    summary="Get a book by Google Books volume ID",
    description="""
    Book detail. A volume that is not stored yet is fetched from Google
    Books, saved and indexed. `is_favorited` is only true for an
    authenticated user who favorited the book.
    """,
)
@limiter.limit(settings.rate_limit_default)
def get_book(
    request: Request,
    response: Response,
    google_books_id: str,
    store: BookStoreDep,
    google_books: GoogleBooksDep,
    favorites: FavoritesDep,
    cache: CacheDep,
    user: OptionalUser,
) -> Envelope[BookDetailData]:
    viewer = f"user_{user.id}" if user is not None else "guest"
    cache_key = book_detail_cache_key(google_books_id, viewer)

    cached = cache.get(cache_key)
    if cached is not None:
        response.headers[CACHE_STATUS_HEADER] = "HIT"
        return Envelope(data=BookDetailData.model_validate(cached))
    response.headers[CACHE_STATUS_HEADER] = "MISS"

    book = store.get_by_google_id(google_books_id)

    if book is None:
        raw = google_books.get_detail(google_books_id)
        if raw is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Book not found",
            )

        try:
            book = google_books.normalize_and_upsert(store, raw)
        except SQLAlchemyError as e:
            # Serve what Google returned; the next view retries the write
            store.db.rollback()
            logger.error(f"Failed to store book {google_books_id}: {e}")
            return Envelope(data=BookDetailData(book=book_to_dict(normalize_volume(raw))))

    is_favorited = user is not None and favorites.is_favorited(user.id, book.id)
    data = BookDetailData(book=book_to_dict(book), is_favorited=is_favorited)

    cache.set(cache_key, data.model_dump(mode="json"), settings.cache_ttl_book_detail)
    return Envelope(data=data)


# =============================================================================
# Admin
# =============================================================================

@router.delete(
    "/{book_id}",
    response_model=Envelope[None],
    summary="Delete a book",
    description="Remove a stored book, its favorites and its index document. Superuser only.",
)
def delete_book(
    book_id: int,
    store: BookStoreDep,
    admin: SuperUser,
) -> Envelope[None]:
    book = store.get(book_id)
    if book is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Book with id {book_id} not found",
        )

    store.delete(book)
    logger.info(f"Book {book_id} deleted by admin {admin.email}")
    return Envelope(message="Book deleted successfully")
