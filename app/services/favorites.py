"""
Favorites Store

CRUD and toggle on the (user, book) join table.

The pair is unique: add() reports a duplicate as FavoriteExistsError,
while toggle() is a read-modify-write that simply flips the state. Two
concurrent toggles by the same user on the same book may race; the last
write wins.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.book import Book
from app.models.favorite import Favorite

logger = logging.getLogger(__name__)


class FavoriteExistsError(Exception):
    """The book is already in the user's favorites."""


class BookNotFoundError(Exception):
    """The referenced book does not exist."""


class FavoritesStore:
    """Favorites for users."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get(self, user_id: int, book_id: int) -> Favorite | None:
        stmt = select(Favorite).where(
            Favorite.user_id == user_id,
            Favorite.book_id == book_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_book(self, book_id: int) -> Book | None:
        return self.db.get(Book, book_id)

    def _require_book(self, book_id: int) -> None:
        if self.get_book(book_id) is None:
            raise BookNotFoundError(book_id)

    def is_favorited(self, user_id: int, book_id: int) -> bool:
        return self._get(user_id, book_id) is not None

    def add(self, user_id: int, book_id: int) -> Favorite:
        """
        Add a book to the user's favorites.

        Raises:
            BookNotFoundError: book_id does not exist
            FavoriteExistsError: already favorited
        """
        self._require_book(book_id)

        if self._get(user_id, book_id) is not None:
            raise FavoriteExistsError(book_id)

        favorite = Favorite(user_id=user_id, book_id=book_id)
        self.db.add(favorite)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise FavoriteExistsError(book_id) from e

        self.db.refresh(favorite)
        logger.info(f"User {user_id} favorited book {book_id}")
        return favorite

    def remove(self, user_id: int, book_id: int) -> bool:
        """Remove a favorite. Returns False if it did not exist."""
        favorite = self._get(user_id, book_id)
        if favorite is None:
            return False

        self.db.delete(favorite)
        self.db.commit()
        logger.info(f"User {user_id} unfavorited book {book_id}")
        return True

    def toggle(self, user_id: int, book_id: int) -> bool:
        """
        Flip the favorite state.

        Returns:
            True if the book is now favorited, False if it was removed

        Raises:
            BookNotFoundError: book_id does not exist
        """
        self._require_book(book_id)

        if self.remove(user_id, book_id):
            return False

        self.db.add(Favorite(user_id=user_id, book_id=book_id))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent toggle inserted it first; the book is favorited either way
            self.db.rollback()
        logger.info(f"User {user_id} favorited book {book_id}")
        return True

    def list_books(
        self,
        user_id: int,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Book], int]:
        """
        The user's favorite books, most recently favorited first.

        Returns:
            Tuple of (books on this page, total favorites)
        """
        total = self.db.execute(
            select(func.count(Favorite.id)).where(Favorite.user_id == user_id)
        ).scalar_one()

        stmt = (
            select(Book)
            .join(Favorite, Favorite.book_id == Book.id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        books = list(self.db.execute(stmt).scalars().all())
        return books, total
