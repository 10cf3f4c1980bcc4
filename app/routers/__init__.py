"""
API Routers Package

Router Structure:
- books.py: /api/v1/books/* (listing, hybrid search, suggestions, detail)
- favorites.py: /api/v1/favorites/* (authenticated)
- auth.py: /api/v1/auth/* (registration, login, tokens, account)

Each router is registered in main.py.
"""

from app.routers.auth import router as auth_router
from app.routers.books import router as books_router
from app.routers.favorites import router as favorites_router

__all__ = [
    "auth_router",
    "books_router",
    "favorites_router",
]
