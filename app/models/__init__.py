"""
SQLAlchemy Models Package

Model Relationships:
- User <-> Book: Many-to-Many through Favorite (a user favorites many
                 books, a book is favorited by many users)

Import all models here to:
1. Make them available as: from app.models import Book, User, Favorite
2. Ensure Alembic discovers them for migrations
"""

from app.models.user import User
from app.models.book import Book
from app.models.favorite import Favorite

__all__ = [
    "User",
    "Book",
    "Favorite",
]
