"""
Pydantic Schemas Package

This package contains Pydantic models for request/response validation.

WHY Separate Schemas from SQLAlchemy Models?
============================================
1. Security: Control exactly what data is exposed in API responses
2. Validation: Request bodies are rejected with per-field messages
3. Decoupling: Database schema can evolve independently of API

Schema Naming Convention:
- XxxCreate / XxxRequest: Request bodies
- XxxResponse: A single resource as returned by the API
- XxxData: The "data" block inside the response Envelope
"""

from app.schemas.book import (
    BookDetailData,
    BookListData,
    BookResponse,
    BookSearchData,
    SuggestionsData,
    book_to_dict,
)
from app.schemas.common import Envelope, PaginationMeta
from app.schemas.favorite import (
    FavoriteCreatedData,
    FavoriteRequest,
    FavoriteResponse,
    FavoriteToggleData,
)
from app.schemas.user import (
    AccountDeleteRequest,
    AuthData,
    LoginRequest,
    RefreshTokenRequest,
    TokenData,
    UserCreate,
    UserData,
    UserResponse,
)

__all__ = [
    "AccountDeleteRequest",
    "AuthData",
    "BookDetailData",
    "BookListData",
    "BookResponse",
    "BookSearchData",
    "Envelope",
    "FavoriteCreatedData",
    "FavoriteRequest",
    "FavoriteResponse",
    "FavoriteToggleData",
    "LoginRequest",
    "PaginationMeta",
    "RefreshTokenRequest",
    "SuggestionsData",
    "TokenData",
    "UserCreate",
    "UserData",
    "UserResponse",
    "book_to_dict",
]
