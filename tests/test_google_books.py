"""
Tests for the Google Books client.

HTTP is served by httpx.MockTransport; the handler records every request
so tests can tell a cache hit from a live call.
"""

import httpx
import pytest

from app.config import get_settings
from app.services.cache import ResponseCache, make_cache_key
from app.services.google_books import (
    MAX_RESULTS_PER_REQUEST,
    GoogleBooksClient,
    normalize_volume,
)
from tests.conftest import build_volume

JAVASCRIPT_VOLUMES = [
    build_volume("js1", "JavaScript: The Good Parts", ["Douglas Crockford"]),
    build_volume("js2", "Eloquent JavaScript", ["Marijn Haverbeke"]),
    build_volume("js3", "You Don't Know JS", ["Kyle Simpson"]),
]


class RecordingHandler:
    """MockTransport handler returning a fixed response and recording requests."""

    def __init__(self, status_code: int = 200, payload: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = payload if payload is not None else {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


def make_client(cache: ResponseCache, handler: RecordingHandler, **overrides) -> GoogleBooksClient:
    settings = get_settings().model_copy(update=overrides)
    http_client = httpx.Client(
        base_url=settings.google_books_base_url,
        transport=httpx.MockTransport(handler),
    )
    return GoogleBooksClient(cache, settings=settings, http_client=http_client)


class TestNormalizeVolume:
    """Tests for mapping volumes onto Book columns."""

    def test_full_volume(self):
        raw = build_volume(
            "zyTCAlFPjgYC",
            "Eloquent JavaScript",
            ["Marijn Haverbeke"],
            publisher="No Starch Press",
            publishedDate="2018-12-04",
            pageCount=472,
            categories=["Computers"],
            language="en",
            averageRating=4,
            ratingsCount=120,
            industryIdentifiers=[
                {"type": "ISBN_10", "identifier": "1593279507"},
                {"type": "ISBN_13", "identifier": "9781593279509"},
            ],
            imageLinks={"thumbnail": "http://t", "smallThumbnail": "http://s"},
        )

        fields = normalize_volume(raw)

        assert fields["google_books_id"] == "zyTCAlFPjgYC"
        assert fields["authors"] == ["Marijn Haverbeke"]
        assert fields["isbn_10"] == "1593279507"
        assert fields["isbn_13"] == "9781593279509"
        assert fields["thumbnail"] == "http://t"
        assert fields["small_thumbnail"] == "http://s"
        assert fields["average_rating"] == 4.0
        assert fields["page_count"] == 472

    def test_sparse_volume(self):
        fields = normalize_volume({"id": "abc"})

        assert fields["title"] == "Unknown Title"
        assert fields["authors"] == []
        assert fields["categories"] == []
        assert fields["average_rating"] is None
        assert fields["isbn_13"] is None


class TestSearch:
    """Tests for GoogleBooksClient.search."""

    def test_search_success(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"totalItems": 812, "items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        result = client.search("javascript", max_results=20, start_index=40)

        assert result.failed is False
        assert result.total_count == 812
        assert [item["id"] for item in result.items] == ["js1", "js2", "js3"]

        params = handler.requests[0].url.params
        assert params["q"] == "javascript"
        assert params["maxResults"] == "20"
        assert params["startIndex"] == "40"

    def test_search_cached(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"totalItems": 3, "items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        client.search("javascript")
        second = client.search("JavaScript ")

        assert len(handler.requests) == 1
        assert len(second.items) == 3

    def test_max_results_capped(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"totalItems": 0})
        client = make_client(cache, handler)

        client.search("python", max_results=100)

        assert handler.requests[0].url.params["maxResults"] == str(MAX_RESULTS_PER_REQUEST)

    def test_api_key_sent_when_configured(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"totalItems": 0})
        client = make_client(cache, handler, google_books_api_key="test-key")

        client.search("python")

        assert handler.requests[0].url.params["key"] == "test-key"

    def test_no_items_is_empty_result(self, cache: ResponseCache):
        client = make_client(cache, RecordingHandler(payload={"totalItems": 0}))

        result = client.search("zzzzqqq")

        assert result.items == []
        assert result.total_count == 0
        assert result.failed is False

    @pytest.mark.parametrize("status_code", [403, 500, 503])
    def test_http_error_reported_not_raised(self, cache: ResponseCache, status_code: int):
        handler = RecordingHandler(status_code=status_code, payload={"error": "quota"})
        client = make_client(cache, handler)

        result = client.search("javascript")

        assert result.failed is True
        assert result.items == []

    def test_errors_not_cached(self, cache: ResponseCache):
        handler = RecordingHandler(status_code=500)
        client = make_client(cache, handler)

        client.search("javascript")
        client.search("javascript")

        assert len(handler.requests) == 2

    def test_transport_error_reported(self, cache: ResponseCache):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        http_client = httpx.Client(
            base_url="https://books.test",
            transport=httpx.MockTransport(handler),
        )
        client = GoogleBooksClient(cache, http_client=http_client)

        result = client.search("javascript")

        assert result.failed is True


class TestGetDetail:
    """Tests for GoogleBooksClient.get_detail."""

    def test_detail_found_and_cached(self, cache: ResponseCache):
        handler = RecordingHandler(payload=JAVASCRIPT_VOLUMES[1])
        client = make_client(cache, handler)

        first = client.get_detail("js2")
        second = client.get_detail("js2")

        assert first["id"] == "js2"
        assert second == first
        assert len(handler.requests) == 1
        assert handler.requests[0].url.path.endswith("/volumes/js2")

    def test_detail_not_found(self, cache: ResponseCache):
        client = make_client(cache, RecordingHandler(status_code=404))

        assert client.get_detail("missing") is None

    def test_detail_server_error(self, cache: ResponseCache):
        client = make_client(cache, RecordingHandler(status_code=500))

        assert client.get_detail("js2") is None


class TestSuggestions:
    """Tests for GoogleBooksClient.get_suggestions."""

    def test_titles_then_authors_in_order(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        suggestions = client.get_suggestions("java", limit=5)

        assert suggestions == ["JavaScript: The Good Parts", "Eloquent JavaScript"]

    def test_authors_match(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        assert client.get_suggestions("crock", limit=5) == ["Douglas Crockford"]

    def test_limit_respected(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        assert len(client.get_suggestions("s", limit=2)) == 2

    def test_blank_query(self, cache: ResponseCache):
        handler = RecordingHandler()
        client = make_client(cache, handler)

        assert client.get_suggestions("   ") == []
        assert handler.requests == []

    def test_short_prefix_served_from_prefix_cache(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        first = client.get_suggestions("j", limit=5)
        cache.invalidate(make_cache_key("suggestions", q="j", limit=5))
        second = client.get_suggestions("j", limit=5)

        assert second == first
        assert len(handler.requests) == 1

    def test_long_query_skips_prefix_cache(self, cache: ResponseCache):
        handler = RecordingHandler(payload={"items": JAVASCRIPT_VOLUMES})
        client = make_client(cache, handler)

        client.get_suggestions("javascript", limit=5)
        cache.invalidate(make_cache_key("suggestions", q="javascript", limit=5))
        client.get_suggestions("javascript", limit=5)

        assert len(handler.requests) == 2

    def test_failure_returns_empty(self, cache: ResponseCache):
        client = make_client(cache, RecordingHandler(status_code=503))

        assert client.get_suggestions("java") == []
