"""
Favorites Router

Per-user favorite books. Every endpoint requires a Bearer access token.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from app.dependencies import ActiveUser, CacheDep, FavoritesDep, Pagination
from app.schemas import (
    BookListData,
    Envelope,
    FavoriteCreatedData,
    FavoriteRequest,
    FavoriteResponse,
    FavoriteToggleData,
    PaginationMeta,
    book_to_dict,
)
from app.services.book_sync import book_detail_cache_key
from app.services.cache import ResponseCache
from app.services.favorites import BookNotFoundError, FavoriteExistsError, FavoritesStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/favorites",
    tags=["Favorites"],
    responses={
        401: {"description": "Not authenticated"},
    },
)


def evict_viewer_detail(cache: ResponseCache, favorites: FavoritesStore, user_id: int, book_id: int) -> None:
    """Drop the user's cached detail response so is_favorited is not stale."""
    book = favorites.get_book(book_id)
    if book is not None:
        cache.invalidate(book_detail_cache_key(book.google_books_id, f"user_{user_id}"))


def book_not_found_response() -> JSONResponse:
    """422 shaped like a validation error on the book_id field."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": "Validation errors",
            "errors": {"book_id": ["The selected book does not exist"]},
        },
    )


@router.get(
    "",
    response_model=Envelope[BookListData],
    summary="List favorite books",
    description="The current user's favorite books, most recently added first.",
)
def list_favorites(
    user: ActiveUser,
    favorites: FavoritesDep,
    pagination: Pagination,
) -> Envelope[BookListData]:
    books, total = favorites.list_books(user.id, pagination.page, pagination.per_page)
    return Envelope(
        data=BookListData(
            books=[book_to_dict(book) for book in books],
            pagination=PaginationMeta.build(pagination.page, pagination.per_page, total),
        )
    )


@router.post(
    "",
    response_model=Envelope[FavoriteCreatedData],
    status_code=status.HTTP_201_CREATED,
    summary="Add a favorite",
    responses={
        409: {"description": "Book already in favorites"},
        422: {"description": "Book does not exist"},
    },
)
def add_favorite(
    body: FavoriteRequest,
    user: ActiveUser,
    favorites: FavoritesDep,
    cache: CacheDep,
):
    try:
        favorite = favorites.add(user.id, body.book_id)
    except BookNotFoundError:
        return book_not_found_response()
    except FavoriteExistsError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Book is already in favorites",
        )

    evict_viewer_detail(cache, favorites, user.id, body.book_id)

    return Envelope(
        message="Book added to favorites",
        data=FavoriteCreatedData(
            favorite=FavoriteResponse.model_validate(favorite),
            book=book_to_dict(favorite.book),
        ),
    )


@router.post(
    "/toggle",
    response_model=Envelope[FavoriteToggleData],
    summary="Toggle a favorite",
    description="Add the book if it is not a favorite yet, remove it otherwise.",
)
def toggle_favorite(
    body: FavoriteRequest,
    user: ActiveUser,
    favorites: FavoritesDep,
    cache: CacheDep,
):
    try:
        is_favorited = favorites.toggle(user.id, body.book_id)
    except BookNotFoundError:
        return book_not_found_response()

    evict_viewer_detail(cache, favorites, user.id, body.book_id)

    message = "Book added to favorites" if is_favorited else "Book removed from favorites"
    return Envelope(message=message, data=FavoriteToggleData(is_favorited=is_favorited))


@router.delete(
    "/{book_id}",
    response_model=Envelope[None],
    summary="Remove a favorite",
    responses={404: {"description": "Book is not in favorites"}},
)
def remove_favorite(
    book_id: int,
    user: ActiveUser,
    favorites: FavoritesDep,
    cache: CacheDep,
) -> Envelope[None]:
    if not favorites.remove(user.id, book_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book is not in favorites",
        )
    evict_viewer_detail(cache, favorites, user.id, book_id)
    return Envelope(message="Book removed from favorites")
