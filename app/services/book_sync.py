"""
Book Change Propagation

Keeps the search index and the response cache eventually consistent with
the books table. BookStore calls this listener after every committed
write.

Propagation is fire-and-forget: index failures are logged and never
raised, so a search index outage cannot block a database write.
"""

import logging

from app.models.book import Book
from app.services.cache import ResponseCache, make_cache_key
from app.services.search_index import SearchIndexClient, SearchIndexError

logger = logging.getLogger(__name__)


def book_detail_cache_key(google_books_id: str, viewer: str) -> str:
    """Cache key of the /books/{id} response for one viewer ("guest" or "user_<id>")."""
    return make_cache_key("book_detail", google_books_id, viewer)


def evict_listing_caches(cache: ResponseCache) -> None:
    """Evict every cached page of GET /books."""
    cache.invalidate_pattern("books_index:*")


def evict_book_caches(cache: ResponseCache, google_books_id: str, listings: bool = True) -> None:
    """
    Evict every cached response that may contain this book.

    Batch writers pass listings=False and call evict_listing_caches()
    once for the whole batch.
    """
    # Detail responses are cached per viewer
    cache.invalidate_pattern(make_cache_key("book_detail", google_books_id) + ":*")
    cache.invalidate(make_cache_key("gb_detail", google_books_id))
    if listings:
        evict_listing_caches(cache)


class BookSyncListener:
    """Propagates Book writes to the search index and evicts stale cache entries."""

    def __init__(self, index: SearchIndexClient, cache: ResponseCache) -> None:
        self.index = index
        self.cache = cache

    def book_saved(self, book: Book, reindex: bool = True) -> None:
        """
        reindex=False marks a batch write: the caller indexes the batch and
        evicts the listing caches once.
        """
        if reindex:
            try:
                self.index.upsert(book)
            except SearchIndexError as e:
                logger.error(f"Failed to auto-index book {book.title} (ID: {book.id}): {e}")

        evict_book_caches(self.cache, book.google_books_id, listings=reindex)

    def book_deleted(self, book: Book) -> None:
        try:
            self.index.delete(book.id)
        except SearchIndexError as e:
            logger.error(
                f"Failed to remove book {book.title} (ID: {book.id}) from index: {e}"
            )

        evict_book_caches(self.cache, book.google_books_id)
