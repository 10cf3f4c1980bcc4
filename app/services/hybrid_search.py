"""
Hybrid Search

Combines the search index, Google Books and the local book store into a
single search(query, page, page_size) operation.

The index is fast but may be stale; Google Books is treated as the
complete, authoritative source and is queried on every uncached search.
Books Google returns that are not stored yet are persisted and batch
indexed, so the index fills up with whatever users actually search for.

Fallback ladder (never raises to the caller):
- index and Google both answer     -> "hybrid"
- index down, Google answers       -> "external-only-fallback"
- Google down, index has hits      -> "index-only-fallback"
- Google down, no index hits       -> "empty-error-fallback"
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings, get_settings
from app.models.book import Book
from app.schemas.book import book_to_dict
from app.services.book_store import BookStore
from app.services.book_sync import evict_listing_caches
from app.services.cache import ResponseCache, make_cache_key
from app.services.google_books import GoogleBooksClient, normalize_volume
from app.services.search_index import IndexQueryResult, SearchIndexClient, SearchIndexError

logger = logging.getLogger(__name__)

SOURCE_HYBRID = "hybrid"
SOURCE_INDEX_ONLY = "index-only-fallback"
SOURCE_EXTERNAL_ONLY = "external-only-fallback"
SOURCE_EMPTY = "empty-error-fallback"


@dataclass
class HybridSearchResult:
    books: list[dict[str, Any]] = field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    total_pages: int = 0
    source: str = SOURCE_HYBRID
    new_books_indexed: int = 0
    index_count: int = 0
    external_count: int = 0
    combined_count: int = 0
    facets: dict[str, dict[str, int]] = field(default_factory=dict)
    error: str | None = None
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("cached")
        return data


def merge_results(
    index_books: list[dict[str, Any]],
    external_books: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """
    Merge index hits and external books, de-duplicated by google_books_id.

    Index hits come first and win over an external copy of the same book.
    """
    merged: list[dict[str, Any]] = []
    seen: set[str] = set()

    for book in [*index_books, *external_books]:
        key = book.get("google_books_id") or str(book.get("id"))
        if key in seen:
            continue
        seen.add(key)
        merged.append(book)

    return merged


class HybridSearchService:
    """
    Search orchestrator.

    Usage:
        service = HybridSearchService(index, google_books, store, cache)
        result = service.search("javascript", page=1, page_size=20)
    """

    def __init__(
        self,
        index: SearchIndexClient,
        source: GoogleBooksClient,
        store: BookStore,
        cache: ResponseCache,
        settings: Settings | None = None,
    ) -> None:
        self.index = index
        self.source = source
        self.store = store
        self.cache = cache
        self.settings = settings or get_settings()

    def search(self, query: str, page: int = 1, page_size: int = 20) -> HybridSearchResult:
        cache_key = make_cache_key("hybrid_search", q=query, page=page, per_page=page_size)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return HybridSearchResult(**cached, cached=True)

        logger.info(f"Hybrid search started for '{query}', page {page}")

        # 1. Index first; a failure only degrades the result
        index_result: IndexQueryResult | None = None
        try:
            index_result = self.index.query(query, page, page_size)
            logger.info(f"Found {len(index_result.hits)} books in the index for '{query}'")
        except SearchIndexError as e:
            logger.warning(f"Search index unavailable for '{query}': {e}")
        index_books = index_result.hits if index_result else []

        # 2. Always fetch the same page window from Google Books
        external = self.source.search(query, page_size, (page - 1) * page_size)

        if external.failed:
            result = self._fallback(page, page_size, index_result, external.error)
            logger.warning(
                f"Google Books failed for '{query}', returning {result.source} "
                f"({len(result.books)} books)"
            )
            return result

        # 3. Reuse stored books, persist the rest
        external_books, new_books, store_failures = self._ingest(external.items)
        if new_books:
            evict_listing_caches(self.cache)

        # 4. Batch index the newly stored books
        indexed = 0
        if new_books:
            try:
                indexed = self.index.upsert_batch(new_books)
                logger.info(f"Auto-indexed {indexed} new books for '{query}'")
            except SearchIndexError as e:
                logger.error(f"Failed to index {len(new_books)} new books for '{query}': {e}")

        # 5. The cached index page no longer reflects the index
        if indexed:
            self.index.invalidate_query(query, page, page_size)

        # 6-8. Merge, count and label
        merged = merge_results(index_books, external_books)
        total = max(external.total_count, len(merged))

        result = HybridSearchResult(
            books=merged[:page_size],
            total_count=total,
            current_page=page,
            total_pages=math.ceil(total / page_size),
            source=SOURCE_HYBRID if index_result is not None else SOURCE_EXTERNAL_ONLY,
            new_books_indexed=indexed,
            index_count=len(index_books),
            external_count=len(external_books),
            combined_count=len(merged),
            facets=index_result.facets if index_result else {},
        )

        # Unpersisted books would be served from cache without ids
        if result.source == SOURCE_HYBRID and not store_failures:
            self.cache.set(cache_key, result.to_dict(), self.settings.cache_ttl_hybrid_search)

        logger.info(
            f"Hybrid search completed for '{query}': {result.combined_count} books, "
            f"{indexed} newly indexed, source={result.source}"
        )
        return result

    def _ingest(self, items: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[Book], int]:
        """
        Resolve raw Google volumes against the local store.

        A database error on one volume serves its unpersisted payload
        instead.

        Returns:
            Tuple of (serialized books in source order, books created now,
            number of volumes the store failed on)
        """
        books: list[dict[str, Any]] = []
        created_books: list[Book] = []
        failures = 0

        for raw in items:
            if not raw.get("id"):
                continue

            fields = normalize_volume(raw)
            try:
                existing = self.store.get_by_google_id(raw["id"])
                if existing is not None:
                    books.append(book_to_dict(existing))
                    continue
                book, created = self.store.upsert(fields, reindex=False)
            except SQLAlchemyError as e:
                self.store.db.rollback()
                logger.error(f"Failed to store book {raw['id']}: {e}")
                books.append(book_to_dict(fields))
                failures += 1
                continue

            if created:
                created_books.append(book)
            books.append(book_to_dict(book))

        return books, created_books, failures

    def _fallback(
        self,
        page: int,
        page_size: int,
        index_result: IndexQueryResult | None,
        error: str | None,
    ) -> HybridSearchResult:
        if index_result is not None and index_result.hits:
            hits = index_result.hits
            return HybridSearchResult(
                books=hits,
                total_count=len(hits),
                current_page=page,
                total_pages=math.ceil(len(hits) / page_size),
                source=SOURCE_INDEX_ONLY,
                index_count=len(hits),
                combined_count=len(hits),
                facets=index_result.facets,
            )

        return HybridSearchResult(
            current_page=page,
            source=SOURCE_EMPTY,
            error=error or "Search backends unavailable",
        )
