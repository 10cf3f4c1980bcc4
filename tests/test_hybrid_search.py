"""
Tests for the hybrid search orchestrator.

The index and Google Books are MagicMocks; books are persisted through a
real BookStore on the test database.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.services.book_store import BookStore
from app.services.cache import ResponseCache, make_cache_key
from app.services.google_books import ExternalSearchResult
from app.services.hybrid_search import (
    SOURCE_EMPTY,
    SOURCE_EXTERNAL_ONLY,
    SOURCE_HYBRID,
    SOURCE_INDEX_ONLY,
    HybridSearchService,
    merge_results,
)
from app.services.search_index import IndexQueryResult, SearchIndexError
from tests.conftest import build_volume


def volumes(count: int, prefix: str = "js") -> list[dict]:
    return [build_volume(f"{prefix}{i:03d}", f"JavaScript Book {i}", [f"Author {i}"]) for i in range(count)]


def index_hit(google_books_id: str, title: str) -> dict:
    return {"id": 900, "google_books_id": google_books_id, "title": title, "authors": []}


@pytest.fixture
def service(search_index, google_books, store: BookStore, cache: ResponseCache) -> HybridSearchService:
    return HybridSearchService(search_index, google_books, store, cache)


class TestMergeResults:
    """Tests for de-duplicating merged results."""

    def test_index_hits_first(self):
        merged = merge_results(
            [{"google_books_id": "a"}],
            [{"google_books_id": "b"}, {"google_books_id": "c"}],
        )
        assert [book["google_books_id"] for book in merged] == ["a", "b", "c"]

    def test_index_copy_wins(self):
        merged = merge_results(
            [{"google_books_id": "a", "title": "From index"}],
            [{"google_books_id": "a", "title": "From Google"}],
        )
        assert merged == [{"google_books_id": "a", "title": "From index"}]

    def test_duplicates_within_one_source(self):
        merged = merge_results([], [{"google_books_id": "a"}, {"google_books_id": "a"}])
        assert len(merged) == 1


class TestHybrid:
    """Both backends answer."""

    def test_javascript_first_page(self, service, google_books, search_index, store):
        items = volumes(38)
        items += [items[3], items[7]]
        google_books.search.return_value = ExternalSearchResult(items=items, total_count=40)

        result = service.search("javascript", page=1, page_size=20)

        assert result.source == SOURCE_HYBRID
        assert result.new_books_indexed == 38
        assert len(result.books) == 20
        assert result.total_count >= 40
        assert result.combined_count == 38
        assert store.get_by_google_id("js037") is not None
        google_books.search.assert_called_once_with("javascript", 20, 0)

    def test_external_window_follows_page(self, service, google_books):
        service.search("javascript", page=3, page_size=20)

        google_books.search.assert_called_once_with("javascript", 20, 40)

    def test_total_pages(self, service, google_books):
        google_books.search.return_value = ExternalSearchResult(items=volumes(20), total_count=45)

        result = service.search("javascript", page=1, page_size=20)

        assert result.total_count == 45
        assert result.total_pages == 3

    def test_index_hits_merged_before_external(self, service, google_books, search_index):
        search_index.query.return_value = IndexQueryResult(
            hits=[index_hit("js001", "Indexed copy"), index_hit("idx", "Only indexed")],
            total_hits=2,
            facets={"language": {"en": 2}},
        )
        google_books.search.return_value = ExternalSearchResult(items=volumes(3), total_count=3)

        result = service.search("javascript")

        titles = [book["title"] for book in result.books]
        assert titles == ["Indexed copy", "Only indexed", "JavaScript Book 0", "JavaScript Book 2"]
        assert result.index_count == 2
        assert result.external_count == 3
        assert result.facets == {"language": {"en": 2}}

    def test_stored_books_not_recreated(self, service, google_books, search_index, sample_book):
        google_books.search.return_value = ExternalSearchResult(
            items=[build_volume(sample_book.google_books_id, "Renamed upstream")],
            total_count=1,
        )

        result = service.search("eloquent")

        assert result.new_books_indexed == 0
        assert result.books[0]["title"] == "Eloquent JavaScript"
        assert result.books[0]["id"] == sample_book.id
        search_index.upsert_batch.assert_not_called()

    def test_new_books_invalidate_index_page(self, service, google_books, search_index):
        google_books.search.return_value = ExternalSearchResult(items=volumes(2), total_count=2)

        service.search("javascript", page=1, page_size=20)

        search_index.invalidate_query.assert_called_once_with("javascript", 1, 20)

    def test_index_write_failure_still_returns_books(self, service, google_books, search_index):
        google_books.search.return_value = ExternalSearchResult(items=volumes(2), total_count=2)
        search_index.upsert_batch.side_effect = SearchIndexError("bulk rejected")

        result = service.search("javascript")

        assert result.source == SOURCE_HYBRID
        assert result.new_books_indexed == 0
        assert len(result.books) == 2
        search_index.invalidate_query.assert_not_called()

    def test_volumes_without_id_skipped(self, service, google_books):
        google_books.search.return_value = ExternalSearchResult(
            items=[{"volumeInfo": {"title": "No id"}}, *volumes(1)],
            total_count=2,
        )

        result = service.search("javascript")

        assert [book["google_books_id"] for book in result.books] == ["js000"]


class TestFallbacks:
    """One or both backends are down."""

    def test_index_down(self, service, google_books, search_index):
        search_index.query.side_effect = SearchIndexError("connection refused")
        google_books.search.return_value = ExternalSearchResult(items=volumes(2), total_count=2)

        result = service.search("javascript")

        assert result.source == SOURCE_EXTERNAL_ONLY
        assert len(result.books) == 2
        assert result.facets == {}

    def test_google_down_with_index_hits(self, service, google_books, search_index):
        search_index.query.return_value = IndexQueryResult(
            hits=[index_hit("a", "A"), index_hit("b", "B")],
            total_hits=57,
        )
        google_books.search.return_value = ExternalSearchResult(error="503 Service Unavailable")

        result = service.search("javascript")

        assert result.source == SOURCE_INDEX_ONLY
        assert result.total_count == 2
        assert result.total_pages == 1
        assert result.error is None

    def test_both_down(self, service, google_books, search_index):
        search_index.query.side_effect = SearchIndexError("connection refused")
        google_books.search.return_value = ExternalSearchResult(error="timed out")

        result = service.search("javascript")

        assert result.source == SOURCE_EMPTY
        assert result.books == []
        assert result.total_count == 0
        assert result.error == "timed out"

    def test_google_down_and_no_index_hits(self, service, google_books):
        google_books.search.return_value = ExternalSearchResult(error="quota exceeded")

        result = service.search("javascript")

        assert result.source == SOURCE_EMPTY

    def test_store_failure_serves_unpersisted_book(self, search_index, google_books, cache):
        store = MagicMock(spec=BookStore)
        store.db = MagicMock()
        store.get_by_google_id.return_value = None
        store.upsert.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))
        google_books.search.return_value = ExternalSearchResult(items=volumes(1), total_count=1)

        result = HybridSearchService(search_index, google_books, store, cache).search("javascript")

        store.db.rollback.assert_called_once()
        assert result.books[0]["google_books_id"] == "js000"
        assert result.books[0]["id"] is None
        assert result.new_books_indexed == 0

    def test_lookup_failure_serves_unpersisted_book(self, search_index, google_books, cache):
        store = MagicMock(spec=BookStore)
        store.db = MagicMock()
        store.get_by_google_id.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))
        search_index.query.return_value = IndexQueryResult(hits=[index_hit("a", "A")], total_hits=1)
        google_books.search.return_value = ExternalSearchResult(items=volumes(1), total_count=1)
        service = HybridSearchService(search_index, google_books, store, cache)

        result = service.search("javascript")

        store.db.rollback.assert_called_once()
        store.upsert.assert_not_called()
        assert result.source == SOURCE_HYBRID
        assert [book["google_books_id"] for book in result.books] == ["a", "js000"]
        assert result.books[1]["id"] is None

        service.search("javascript")

        assert google_books.search.call_count == 2


class TestCaching:
    """Only complete hybrid results are cached."""

    def test_hybrid_result_cached(self, service, google_books, search_index):
        google_books.search.return_value = ExternalSearchResult(items=volumes(2), total_count=2)

        first = service.search("javascript")
        second = service.search("JavaScript")

        assert first.cached is False
        assert second.cached is True
        assert second.books == first.books
        assert google_books.search.call_count == 1
        assert search_index.query.call_count == 1

    def test_new_books_evict_listing_pages(self, service, google_books, cache):
        cache.set("books_index:page=1", {"books": []}, ttl=60)
        cache.set("books_index:page=2", {"books": []}, ttl=60)
        google_books.search.return_value = ExternalSearchResult(items=volumes(3), total_count=3)

        service.search("javascript")

        assert cache.get("books_index:page=1") is None
        assert cache.get("books_index:page=2") is None

    def test_known_books_keep_listing_pages(self, service, google_books, cache, sample_book):
        cache.set("books_index:page=1", {"books": []}, ttl=60)
        google_books.search.return_value = ExternalSearchResult(
            items=[build_volume(sample_book.google_books_id, sample_book.title)],
            total_count=1,
        )

        service.search("javascript")

        assert cache.get("books_index:page=1") is not None

    def test_cache_key_includes_page(self, service, google_books, cache):
        service.search("javascript", page=2, page_size=10)

        assert cache.get(make_cache_key("hybrid_search", q="javascript", page=2, per_page=10)) is not None
        assert cache.get(make_cache_key("hybrid_search", q="javascript", page=1, per_page=10)) is None

    @pytest.mark.parametrize("index_down, google_down", [(True, False), (False, True), (True, True)])
    def test_fallbacks_not_cached(self, service, google_books, search_index, index_down, google_down):
        if index_down:
            search_index.query.side_effect = SearchIndexError("down")
        else:
            search_index.query.return_value = IndexQueryResult(hits=[index_hit("a", "A")], total_hits=1)
        if google_down:
            google_books.search.return_value = ExternalSearchResult(error="down")

        service.search("javascript")
        service.search("javascript")

        assert google_books.search.call_count == 2
