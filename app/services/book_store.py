"""
Local Book Store

Repository for Book rows: upsert keyed on the Google Books volume ID,
lookups, sorted listings and the substring search used as the last
suggestions fallback.

Every write calls the registered BookChangeListener after the commit, so
search index propagation and cache eviction happen on the write path
explicitly rather than through ORM events.
"""

import logging
from typing import Any, Literal, Protocol

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.book import Book
from app.utils.suggestions import collect_suggestions

logger = logging.getLogger(__name__)

SortField = Literal["created_at", "title", "average_rating"]
SortOrder = Literal["asc", "desc"]

SORT_COLUMNS = {
    "created_at": Book.created_at,
    "title": Book.title,
    "average_rating": Book.average_rating,
}

# Columns an upsert may write; anything else in the payload is ignored
BOOK_FIELDS = (
    "title",
    "authors",
    "description",
    "publisher",
    "published_date",
    "page_count",
    "categories",
    "language",
    "isbn_10",
    "isbn_13",
    "thumbnail",
    "small_thumbnail",
    "average_rating",
    "ratings_count",
    "preview_link",
    "info_link",
)


class BookChangeListener(Protocol):
    """Receives Book writes after they are committed."""

    def book_saved(self, book: Book, reindex: bool = True) -> None: ...

    def book_deleted(self, book: Book) -> None: ...


class BookStore:
    """
    Book persistence.

    Usage:
        store = BookStore(db, listener=BookSyncListener(index, cache))
        book, created = store.upsert(normalize_volume(raw))
    """

    def __init__(self, db: Session, listener: BookChangeListener | None = None) -> None:
        self.db = db
        self.listener = listener

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, book_id: int) -> Book | None:
        return self.db.get(Book, book_id)

    def get_by_google_id(self, google_books_id: str) -> Book | None:
        stmt = select(Book).where(Book.google_books_id == google_books_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def exists(self, book_id: int) -> bool:
        stmt = select(Book.id).where(Book.id == book_id)
        return self.db.execute(stmt).first() is not None

    def list_books(
        self,
        page: int = 1,
        per_page: int = 20,
        sort: SortField = "created_at",
        order: SortOrder = "desc",
    ) -> tuple[list[Book], int]:
        """
        Paginated listing sorted by creation time, title or rating.

        The id is used as a tie-breaker in the same direction so that
        pages are stable when many rows share a timestamp or rating.

        Returns:
            Tuple of (books on this page, total number of books)
        """
        column = SORT_COLUMNS[sort]
        if order == "asc":
            ordering = [column.asc(), Book.id.asc()]
        else:
            ordering = [column.desc(), Book.id.desc()]

        total = self.db.execute(select(func.count(Book.id))).scalar_one()
        stmt = (
            select(Book)
            .order_by(*ordering)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        books = list(self.db.execute(stmt).scalars().all())
        return books, total

    def suggest_local(self, query: str, limit: int = 5) -> list[str]:
        """Title/author suggestions from a substring match on stored books."""
        pattern = f"%{query.strip()}%"
        stmt = (
            select(Book.title, Book.authors)
            .where(
                or_(
                    Book.title.ilike(pattern),
                    cast(Book.authors, String).ilike(pattern),
                )
            )
            .order_by(Book.ratings_count.desc().nulls_last(), Book.id)
            .limit(limit * 2)
        )
        rows = self.db.execute(stmt).all()
        return collect_suggestions(((row.title, row.authors) for row in rows), query, limit)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, fields: dict[str, Any], reindex: bool = True) -> tuple[Book, bool]:
        """
        Insert or update a book keyed on google_books_id.

        Args:
            fields: Normalized book fields (see normalize_volume)
            reindex: Whether the change listener should push this book to
                the search index itself; callers that batch-index pass False
                and evict the listing caches once per batch

        Returns:
            Tuple of (book, created)
        """
        google_books_id = fields["google_books_id"]
        values = {name: fields.get(name) for name in BOOK_FIELDS}
        values["authors"] = values["authors"] or []
        values["categories"] = values["categories"] or []

        book = self.get_by_google_id(google_books_id)
        created = book is None

        if created:
            book = Book(google_books_id=google_books_id, **values)
            self.db.add(book)
            try:
                self.db.commit()
            except IntegrityError:
                # Another request inserted the same volume first
                self.db.rollback()
                book = self.get_by_google_id(google_books_id)
                if book is None:
                    raise
                created = False

        if not created:
            for name, value in values.items():
                setattr(book, name, value)
            self.db.commit()

        self.db.refresh(book)
        logger.debug(
            f"Book {'created' if created else 'updated'}: {book.title} "
            f"({book.google_books_id})"
        )

        if self.listener is not None:
            self.listener.book_saved(book, reindex=reindex)

        return book, created

    def delete(self, book: Book) -> None:
        """Delete a book; favorites referencing it are removed with it."""
        # Load what the listener reads while the row still exists
        book_id, title, _ = book.id, book.title, book.google_books_id

        self.db.delete(book)
        self.db.commit()
        logger.info(f"Book deleted: {title} (ID: {book_id})")

        if self.listener is not None:
            self.listener.book_deleted(book)
