"""
Google Books Client

Fetches search results, volume details and autocomplete suggestions from
the Google Books API.

Features:
- Shared httpx client with a bounded timeout
- Fixed delay before each search/detail request (cooperative rate limiting)
- Raw responses cached in the ResponseCache
- Never raises on a read: failures are logged and reported as empty results

Google Books is the source of truth for book metadata. normalize_volume()
maps its nested payload onto the flat Book columns.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from app.config import Settings, get_settings
from app.services.cache import ResponseCache, make_cache_key
from app.utils.suggestions import collect_suggestions

if TYPE_CHECKING:
    from app.models.book import Book
    from app.services.book_store import BookStore

logger = logging.getLogger(__name__)

USER_AGENT = "BookDiscoveryAPI/1.0"

# Google Books caps maxResults at 40
MAX_RESULTS_PER_REQUEST = 40


@dataclass
class ExternalSearchResult:
    """One page of raw volumes from Google Books."""

    items: list[dict[str, Any]] = field(default_factory=list)
    total_count: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {"items": self.items, "total_count": self.total_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExternalSearchResult":
        return cls(items=data.get("items", []), total_count=data.get("total_count", 0))


# =============================================================================
# Payload Normalization
# =============================================================================

def normalize_volume(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Map a Google Books volume onto Book column values.

    Missing fields map to None (or an empty list), never to an error.

    Args:
        raw: Volume resource as returned by /volumes or /volumes/{id}

    Returns:
        Dict of Book field values, including google_books_id
    """
    info = raw.get("volumeInfo") or {}
    images = info.get("imageLinks") or {}

    isbn_10 = None
    isbn_13 = None
    for identifier in info.get("industryIdentifiers") or []:
        if identifier.get("type") == "ISBN_10":
            isbn_10 = identifier.get("identifier")
        elif identifier.get("type") == "ISBN_13":
            isbn_13 = identifier.get("identifier")

    rating = info.get("averageRating")

    return {
        "google_books_id": raw["id"],
        "title": info.get("title") or "Unknown Title",
        "authors": list(info.get("authors") or []),
        "description": info.get("description"),
        "publisher": info.get("publisher"),
        "published_date": info.get("publishedDate"),
        "page_count": info.get("pageCount"),
        "categories": list(info.get("categories") or []),
        "language": info.get("language"),
        "isbn_10": isbn_10,
        "isbn_13": isbn_13,
        "thumbnail": images.get("thumbnail"),
        "small_thumbnail": images.get("smallThumbnail"),
        "average_rating": float(rating) if rating is not None else None,
        "ratings_count": info.get("ratingsCount"),
        "preview_link": info.get("previewLink"),
        "info_link": info.get("infoLink"),
    }


# =============================================================================
# Client
# =============================================================================

class GoogleBooksClient:
    """
    Client for the Google Books volumes API.

    Usage:
        client = GoogleBooksClient(cache)
        page = client.search("javascript", max_results=20, start_index=0)
        for raw in page.items:
            client.normalize_and_upsert(store, raw)
    """

    def __init__(
        self,
        cache: ResponseCache,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache
        self._client = http_client or httpx.Client(
            base_url=self.settings.google_books_base_url,
            timeout=self.settings.google_books_timeout,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, params: dict[str, Any], throttle: bool = True) -> dict:
        """
        GET a Google Books endpoint and decode the JSON body.

        Raises:
            httpx.HTTPError: Transport failure or non-2xx status
            ValueError: Body is not valid JSON
        """
        if self.settings.google_books_api_key:
            params = {**params, "key": self.settings.google_books_api_key}

        if throttle and self.settings.google_books_request_delay > 0:
            time.sleep(self.settings.google_books_request_delay)

        response = self._client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def search(self, query: str, max_results: int = 20, start_index: int = 0) -> ExternalSearchResult:
        """
        Search volumes.

        Successful responses are cached for cache_ttl_external_search.
        Failures are logged and returned as an empty result with error set;
        they are not cached.
        """
        max_results = min(max_results, MAX_RESULTS_PER_REQUEST)
        cache_key = make_cache_key(
            "gb_search", q=query, max_results=max_results, start_index=start_index
        )

        cached = self.cache.get(cache_key)
        if cached is not None:
            return ExternalSearchResult.from_dict(cached)

        try:
            data = self._get(
                "/volumes",
                {
                    "q": query,
                    "maxResults": max_results,
                    "startIndex": start_index,
                    "printType": "books",
                },
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Google Books search error for '{query}': {e}")
            return ExternalSearchResult(error=str(e) or e.__class__.__name__)

        result = ExternalSearchResult(
            items=data.get("items") or [],
            total_count=data.get("totalItems") or 0,
        )
        self.cache.set(cache_key, result.to_dict(), self.settings.cache_ttl_external_search)
        return result

    # -------------------------------------------------------------------------
    # Detail
    # -------------------------------------------------------------------------

    def get_detail(self, volume_id: str) -> dict[str, Any] | None:
        """
        Fetch a single volume.

        Returns None when Google Books reports the volume as missing or
        the request fails.
        """
        cache_key = make_cache_key("gb_detail", volume_id)

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            data = self._get(f"/volumes/{volume_id}", {})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info(f"Google Books volume not found: {volume_id}")
            else:
                logger.error(f"Google Books detail error for {volume_id}: {e}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Google Books detail error for {volume_id}: {e}")
            return None

        self.cache.set(cache_key, data, self.settings.cache_ttl_external_detail)
        return data

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def get_suggestions(self, query: str, limit: int = 5) -> list[str]:
        """
        Live autocomplete suggestions (titles and author names).

        Short prefixes (two characters or fewer) are also cached under a
        coarser prefix key with a longer TTL, which is checked first.
        """
        normalized = query.strip().lower()
        if not normalized:
            return []

        short_prefix = len(normalized) <= 2
        prefix_key = make_cache_key("suggestions_prefix", normalized, limit)
        cache_key = make_cache_key("suggestions", q=normalized, limit=limit)

        if short_prefix:
            cached = self.cache.get(prefix_key)
            if cached is not None:
                return cached

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            data = self._get(
                "/volumes",
                {
                    "q": query,
                    "maxResults": min(limit * 3, MAX_RESULTS_PER_REQUEST),
                    "printType": "books",
                    "fields": "items(volumeInfo(title,authors))",
                },
                throttle=False,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Google Books suggestions error for '{query}': {e}")
            return []

        entries = (
            ((item.get("volumeInfo") or {}).get("title"),
             (item.get("volumeInfo") or {}).get("authors"))
            for item in data.get("items") or []
        )
        suggestions = collect_suggestions(entries, normalized, limit)

        self.cache.set(cache_key, suggestions, self.settings.cache_ttl_suggestions)
        if short_prefix and suggestions:
            self.cache.set(prefix_key, suggestions, self.settings.cache_ttl_suggestions_prefix)

        return suggestions

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def normalize_and_upsert(
        self,
        store: "BookStore",
        raw: dict[str, Any],
        reindex: bool = True,
    ) -> "Book":
        """Normalize a raw volume and upsert it keyed on its volume ID."""
        book, _ = store.upsert(normalize_volume(raw), reindex=reindex)
        return book
