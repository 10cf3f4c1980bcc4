"""
FastAPI Dependencies Module

Reusable components injected into route handlers with Depends().

- DbSession: per-request SQLAlchemy session
- Pagination: page / per_page query parameters
- Shared service clients (cache, search index, Google Books), created once
  in the application lifespan and read from app.state
- Per-request services (BookStore, FavoritesStore, HybridSearchService)
- JWT authentication (CurrentUser, ActiveUser, SuperUser, OptionalUser)

Tests swap any of these with app.dependency_overrides.
"""

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.book_store import BookStore
from app.services.book_sync import BookSyncListener
from app.services.cache import ResponseCache
from app.services.favorites import FavoritesStore
from app.services.google_books import GoogleBooksClient
from app.services.hybrid_search import HybridSearchService
from app.services.search_index import SearchIndexClient

if TYPE_CHECKING:
    from app.models.user import User

# Instead of `db: Session = Depends(get_db)` routes write `db: DbSession`
DbSession = Annotated[Session, Depends(get_db)]


# =============================================================================
# Pagination Parameters
# =============================================================================
class PaginationParams:
    """
    Common pagination parameters for list endpoints.

    Usage in route:
        @router.get("/books")
        def list_books(pagination: Pagination):
            store.list_books(pagination.page, pagination.per_page)
    """

    def __init__(
        self,
        page: int = Query(
            default=1,
            ge=1,
            description="Page number (1-indexed)",
            examples=[1, 2, 3],
        ),
        per_page: int = Query(
            default=20,
            ge=1,
            le=100,
            description="Number of items per page (max 100)",
            examples=[20, 50],
        ),
    ) -> None:
        self.page = page
        self.per_page = per_page

    @property
    def skip(self) -> int:
        """Rows to skip: page 1 skips 0, page 2 skips per_page, ..."""
        return (self.page - 1) * self.per_page


Pagination = Annotated[PaginationParams, Depends()]


# =============================================================================
# Shared Service Clients
# =============================================================================
# Created in the lifespan (app.main) so connections are reused across requests.

def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.cache


def get_search_index(request: Request) -> SearchIndexClient:
    return request.app.state.search_index


def get_google_books(request: Request) -> GoogleBooksClient:
    return request.app.state.google_books


CacheDep = Annotated[ResponseCache, Depends(get_response_cache)]
IndexDep = Annotated[SearchIndexClient, Depends(get_search_index)]
GoogleBooksDep = Annotated[GoogleBooksClient, Depends(get_google_books)]


# =============================================================================
# Per-request Services
# =============================================================================

def get_book_store(db: DbSession, index: IndexDep, cache: CacheDep) -> BookStore:
    """BookStore whose writes propagate to the search index and evict caches."""
    return BookStore(db, listener=BookSyncListener(index, cache))


BookStoreDep = Annotated[BookStore, Depends(get_book_store)]


def get_favorites_store(db: DbSession) -> FavoritesStore:
    return FavoritesStore(db)


FavoritesDep = Annotated[FavoritesStore, Depends(get_favorites_store)]


def get_hybrid_search(
    index: IndexDep,
    google_books: GoogleBooksDep,
    store: BookStoreDep,
    cache: CacheDep,
) -> HybridSearchService:
    return HybridSearchService(index, google_books, store, cache)


HybridSearchDep = Annotated[HybridSearchService, Depends(get_hybrid_search)]


# =============================================================================
# JWT Authentication (User Authentication)
# =============================================================================
# OAuth2PasswordBearer extracts "Authorization: Bearer <token>" and adds
# the "Authorize" button to Swagger UI.

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login",
    auto_error=True,
)

# Optional version that doesn't raise if the token is missing
oauth2_scheme_optional = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login",
    auto_error=False,
)


def _user_from_token(token: str, db: Session):
    from app.models.user import User
    from app.services.security import TOKEN_TYPE_ACCESS, verify_token_type

    payload = verify_token_type(token, TOKEN_TYPE_ACCESS)
    if payload is None:
        return None

    user_id = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        return None

    stmt = select(User).where(User.id == int(user_id))
    return db.execute(stmt).scalar_one_or_none()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
):
    """
    Resolve the user from the Bearer access token.

    Raises:
        HTTPException: 401 if the token is invalid or the user no longer exists
    """
    user = _user_from_token(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_current_active_user(
    current_user=Depends(get_current_user),
):
    """
    Verify the current user is active.

    Raises:
        HTTPException: 403 if the account is disabled
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return current_user


def get_current_superuser(
    current_user=Depends(get_current_active_user),
):
    """
    Verify the current user has admin privileges.

    Raises:
        HTTPException: 403 if the user is not a superuser
    """
    if not current_user.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superuser privileges required",
        )
    return current_user


def get_optional_current_user(
    token: str | None = Depends(oauth2_scheme_optional),
    db: Session = Depends(get_db),
):
    """
    Current user if a valid token was sent, None otherwise.

    Used by endpoints that serve guests too but add per-user data, like
    is_favorited on the book detail.
    """
    if not token:
        return None
    return _user_from_token(token, db)


CurrentUser = Annotated["User", Depends(get_current_user)]
ActiveUser = Annotated["User", Depends(get_current_active_user)]
SuperUser = Annotated["User", Depends(get_current_superuser)]
OptionalUser = Annotated["User | None", Depends(get_optional_current_user)]
