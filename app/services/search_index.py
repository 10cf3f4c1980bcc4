"""
Elasticsearch Search Index

Wraps the books index: settings and mapping configuration, single and
batch upserts, deletes, paginated faceted queries and suggestions.

Features:
- English analyzer with typo-tolerant multi_match queries
- Derived facet fields (published_year, rating_bucket) computed at index time
- Custom ranking applied after relevance (rating, ratings count, date)
- Query results cached briefly in the ResponseCache

Unlike the Google Books client, failures here are logged and re-raised as
SearchIndexError: the hybrid search needs to know when the index is
unusable so it can fall back to the external source.
"""

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError
from elasticsearch.helpers import BulkIndexError, bulk

from app.config import Settings, get_settings
from app.services.cache import ResponseCache, make_cache_key
from app.utils.suggestions import collect_suggestions

if TYPE_CHECKING:
    from app.models.book import Book

logger = logging.getLogger(__name__)

ES_ERRORS = (ApiError, TransportError, BulkIndexError)


class SearchIndexError(Exception):
    """The search index is unavailable or rejected a request."""


# =============================================================================
# Client Construction
# =============================================================================

def create_es_client(settings: Settings | None = None) -> Elasticsearch | None:
    """
    Create and verify an Elasticsearch client.

    Called during application startup. Returns None if the index is
    disabled or unreachable; the search index client then raises
    SearchIndexError on use and the hybrid search falls back.
    """
    settings = settings or get_settings()

    if not settings.elasticsearch_enabled:
        logger.info("Elasticsearch is disabled, skipping initialization")
        return None

    client = Elasticsearch(
        hosts=[settings.elasticsearch_url],
        request_timeout=settings.elasticsearch_timeout,
        retry_on_timeout=True,
        max_retries=2,
    )
    try:
        info = client.info()
        logger.info(
            f"Connected to Elasticsearch {info['version']['number']} "
            f"at {settings.elasticsearch_url}"
        )
        return client
    except ES_ERRORS as e:
        logger.warning(f"Failed to connect to Elasticsearch: {e}")
        client.close()
        return None


# =============================================================================
# Index Definition
# =============================================================================

SEARCHABLE_FIELDS = [
    "title^3",
    "authors^2",
    "description",
    "categories",
    "publisher",
    "isbn_10",
    "isbn_13",
]

# Facet name exposed by the API -> keyword field aggregated in the index
FACET_FIELDS = {
    "categories": "categories.keyword",
    "authors": "authors.keyword",
    "publisher": "publisher.keyword",
    "language": "language",
    "published_year": "published_year",
    "rating_bucket": "rating_bucket",
}

HIGHLIGHT = {
    "pre_tags": ["<em>"],
    "post_tags": ["</em>"],
    "fields": {
        "title": {"number_of_fragments": 0},
        "authors": {"number_of_fragments": 0},
        "description": {"fragment_size": 100, "number_of_fragments": 1},
    },
}

MAX_VALUES_PER_FACET = 100

_TEXT_WITH_KEYWORD = {
    "type": "text",
    "analyzer": "book_analyzer",
    "fields": {"keyword": {"type": "keyword", "ignore_above": 256}},
}

BOOK_INDEX_DEFINITION = {
    "settings": {
        "number_of_shards": 1,
        "number_of_replicas": 0,
        "analysis": {
            "analyzer": {
                "book_analyzer": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "english_possessive_stemmer", "english_stemmer"],
                }
            },
            "filter": {
                "english_stemmer": {"type": "stemmer", "language": "english"},
                "english_possessive_stemmer": {
                    "type": "stemmer",
                    "language": "possessive_english",
                },
            },
        },
    },
    "mappings": {
        "properties": {
            "id": {"type": "integer"},
            "google_books_id": {"type": "keyword"},
            "title": _TEXT_WITH_KEYWORD,
            "authors": _TEXT_WITH_KEYWORD,
            "description": {"type": "text", "analyzer": "book_analyzer"},
            "categories": _TEXT_WITH_KEYWORD,
            "publisher": _TEXT_WITH_KEYWORD,
            "published_date": {"type": "keyword"},
            "published_year": {"type": "integer"},
            "page_count": {"type": "integer"},
            "language": {"type": "keyword"},
            "isbn_10": {"type": "keyword"},
            "isbn_13": {"type": "keyword"},
            "thumbnail": {"type": "keyword", "index": False},
            "small_thumbnail": {"type": "keyword", "index": False},
            "preview_link": {"type": "keyword", "index": False},
            "info_link": {"type": "keyword", "index": False},
            "average_rating": {"type": "float"},
            "ratings_count": {"type": "integer"},
            "rating_bucket": {"type": "keyword"},
            "created_at": {"type": "date"},
            "updated_at": {"type": "date"},
        }
    },
}


# =============================================================================
# Document Projection
# =============================================================================

_YEAR_RE = re.compile(r"^\s*(\d{4})")


def published_year(published_date: str | None) -> int | None:
    """Extract the year from a loose date string ("2008", "2008-08-01")."""
    if not published_date:
        return None
    match = _YEAR_RE.match(published_date)
    return int(match.group(1)) if match else None


def rating_bucket(
    average_rating: float | None,
    buckets: Iterable[tuple[float, str]],
    unknown: str,
) -> str:
    """
    Discrete rating facet label.

    buckets are (minimum, label) pairs ordered from the highest minimum
    down; the first one the rating reaches wins.
    """
    if average_rating is None:
        return unknown
    for minimum, label in buckets:
        if average_rating >= minimum:
            return label
    return unknown


def book_to_document(book: "Book", settings: Settings | None = None) -> dict[str, Any]:
    """Convert a Book model to an index document, adding facet fields."""
    settings = settings or get_settings()
    rating = float(book.average_rating) if book.average_rating is not None else None

    return {
        "id": book.id,
        "google_books_id": book.google_books_id,
        "title": book.title,
        "authors": list(book.authors or []),
        "description": book.description,
        "categories": list(book.categories or []),
        "publisher": book.publisher,
        "published_date": book.published_date,
        "published_year": published_year(book.published_date),
        "page_count": book.page_count,
        "language": book.language,
        "isbn_10": book.isbn_10,
        "isbn_13": book.isbn_13,
        "thumbnail": book.thumbnail,
        "small_thumbnail": book.small_thumbnail,
        "preview_link": book.preview_link,
        "info_link": book.info_link,
        "average_rating": rating,
        "ratings_count": book.ratings_count,
        "rating_bucket": rating_bucket(
            rating, settings.rating_buckets, settings.rating_bucket_unknown
        ),
        "created_at": book.created_at.isoformat() if book.created_at else None,
        "updated_at": book.updated_at.isoformat() if book.updated_at else None,
    }


@dataclass
class IndexQueryResult:
    """One page of index hits with facet counts."""

    hits: list[dict[str, Any]] = field(default_factory=list)
    total_hits: int = 0
    page: int = 1
    total_pages: int = 0
    facets: dict[str, dict[str, int]] = field(default_factory=dict)
    processing_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Search Index Client
# =============================================================================

class SearchIndexClient:
    """
    Books index operations.

    Usage:
        index = SearchIndexClient(create_es_client(), cache)
        index.configure()
        index.upsert_batch(books)
        page = index.query("javascript", page=1, page_size=20)
    """

    def __init__(
        self,
        client: Elasticsearch | None,
        cache: ResponseCache,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client
        self.cache = cache
        self.index_name = f"{self.settings.elasticsearch_index_prefix}books"

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _require_client(self) -> Elasticsearch:
        if self.client is None:
            raise SearchIndexError("Search index is not configured")
        return self.client

    def _ranking(self) -> list[Any]:
        sort: list[Any] = ["_score"]
        for rule in self.settings.index_custom_ranking:
            field_name, _, direction = rule.partition(":")
            sort.append({field_name: {"order": direction or "desc", "missing": "_last"}})
        return sort

    # -------------------------------------------------------------------------
    # Index Management
    # -------------------------------------------------------------------------

    def configure(self, definition: dict[str, Any] | None = None) -> None:
        """
        Create the index, or update its mapping if it already exists.

        Safe to call repeatedly. Analysis settings only apply when the
        index is created; use clear_all() plus a reindex to change them.
        """
        client = self._require_client()
        definition = definition or BOOK_INDEX_DEFINITION

        try:
            if client.indices.exists(index=self.index_name):
                client.indices.put_mapping(
                    index=self.index_name,
                    properties=definition["mappings"]["properties"],
                )
                logger.info(f"Updated Elasticsearch mapping: {self.index_name}")
            else:
                client.indices.create(
                    index=self.index_name,
                    settings=definition["settings"],
                    mappings=definition["mappings"],
                )
                logger.info(f"Created Elasticsearch index: {self.index_name}")
        except ES_ERRORS as e:
            logger.error(f"Failed to configure index {self.index_name}: {e}")
            raise SearchIndexError(str(e)) from e

    def clear_all(self) -> None:
        """Remove every document from the index. Destructive."""
        client = self._require_client()
        try:
            client.delete_by_query(
                index=self.index_name,
                query={"match_all": {}},
                refresh=True,
                conflicts="proceed",
            )
        except ES_ERRORS as e:
            logger.error(f"Error clearing index {self.index_name}: {e}")
            raise SearchIndexError(str(e)) from e

        self.cache.invalidate_pattern("index_query:*")
        self.cache.invalidate_pattern("index_suggestions:*")
        logger.info(f"Elasticsearch index cleared: {self.index_name}")

    # -------------------------------------------------------------------------
    # Document Operations
    # -------------------------------------------------------------------------

    def upsert(self, book: "Book") -> None:
        """Index (or re-index) a single book."""
        client = self._require_client()
        try:
            client.index(
                index=self.index_name,
                id=str(book.id),
                document=book_to_document(book, self.settings),
                refresh=True,
            )
        except ES_ERRORS as e:
            logger.error(f"Error indexing book {book.id}: {e}")
            raise SearchIndexError(str(e)) from e

        logger.info(f"Book indexed: {book.title} (ID: {book.id})")

    def upsert_batch(self, books: list["Book"]) -> int:
        """
        Bulk index books.

        Returns:
            Number of documents actually indexed
        """
        if not books:
            return 0
        client = self._require_client()

        actions = (
            {
                "_index": self.index_name,
                "_id": str(book.id),
                "_source": book_to_document(book, self.settings),
            }
            for book in books
        )

        try:
            success, errors = bulk(client, actions, raise_on_error=False, refresh=True)
        except ES_ERRORS as e:
            logger.error(f"Error batch indexing {len(books)} books: {e}")
            raise SearchIndexError(str(e)) from e

        error_count = len(errors) if isinstance(errors, list) else 0
        if error_count:
            logger.warning(f"Batch indexed {success} books, {error_count} rejected")
        else:
            logger.info(f"Batch indexed {success} books")
        return success

    def delete(self, book_id: int) -> None:
        """Remove a book from the index. A missing document is not an error."""
        client = self._require_client()
        try:
            client.delete(index=self.index_name, id=str(book_id), refresh=True)
        except NotFoundError:
            return
        except ES_ERRORS as e:
            logger.error(f"Error removing book {book_id} from index: {e}")
            raise SearchIndexError(str(e)) from e

        logger.info(f"Book removed from index: {book_id}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _query_cache_key(
        self,
        text: str,
        page: int,
        page_size: int,
        facet_filters: dict[str, Any] | None,
    ) -> str:
        return make_cache_key(
            "index_query",
            q=text,
            page=page,
            per_page=page_size,
            filters=facet_filters or None,
        )

    def query(
        self,
        text: str,
        page: int = 1,
        page_size: int = 20,
        facet_filters: dict[str, Any] | None = None,
    ) -> IndexQueryResult:
        """
        Full-text query with facet filters and facet counts.

        Args:
            text: Search text
            page: Page number (1-indexed)
            page_size: Hits per page
            facet_filters: {facet: value or [values]}; values within one
                facet are ORed, facets are ANDed

        Raises:
            SearchIndexError: Index unavailable or query rejected
        """
        cache_key = self._query_cache_key(text, page, page_size, facet_filters)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return IndexQueryResult(**cached)

        client = self._require_client()

        filters = []
        for facet, values in (facet_filters or {}).items():
            field_name = FACET_FIELDS.get(facet)
            if field_name is None:
                logger.warning(f"Ignoring unknown facet filter: {facet}")
                continue
            if not isinstance(values, (list, tuple, set)):
                values = [values]
            filters.append({"terms": {field_name: list(values)}})

        es_query = {
            "bool": {
                "must": [
                    {
                        "multi_match": {
                            "query": text,
                            "fields": SEARCHABLE_FIELDS,
                            "fuzziness": "AUTO:4,8",
                            "prefix_length": 1,
                        }
                    }
                ],
                "filter": filters,
            }
        }
        aggs = {
            facet: {"terms": {"field": field_name, "size": MAX_VALUES_PER_FACET}}
            for facet, field_name in FACET_FIELDS.items()
        }

        try:
            response = client.search(
                index=self.index_name,
                query=es_query,
                from_=(page - 1) * page_size,
                size=page_size,
                sort=self._ranking(),
                aggs=aggs,
                highlight=HIGHLIGHT,
                track_total_hits=True,
            )
        except ES_ERRORS as e:
            logger.error(f"Search index query error for '{text}': {e}")
            raise SearchIndexError(str(e)) from e

        hits = []
        for hit in response["hits"]["hits"]:
            document = dict(hit["_source"])
            if hit.get("highlight"):
                document["highlight"] = hit["highlight"]
            hits.append(document)

        total = response["hits"]["total"]["value"]
        facets = {
            facet: {
                str(bucket["key"]): bucket["doc_count"]
                for bucket in aggregation["buckets"]
            }
            for facet, aggregation in (response.get("aggregations") or {}).items()
        }

        result = IndexQueryResult(
            hits=hits,
            total_hits=total,
            page=page,
            total_pages=math.ceil(total / page_size) if page_size else 0,
            facets=facets,
            processing_time_ms=response.get("took", 0),
        )
        self.cache.set(cache_key, result.to_dict(), self.settings.cache_ttl_index_query)
        return result

    def invalidate_query(self, text: str, page: int, page_size: int) -> None:
        """Evict the cached unfiltered query result for these parameters."""
        self.cache.invalidate(self._query_cache_key(text, page, page_size, None))

    def suggest(self, query: str, limit: int = 5) -> list[str]:
        """
        Title and author suggestions from indexed books.

        Raises:
            SearchIndexError: Index unavailable or query rejected
        """
        cache_key = make_cache_key("index_suggestions", q=query, limit=limit)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        client = self._require_client()
        try:
            response = client.search(
                index=self.index_name,
                query={
                    "multi_match": {
                        "query": query,
                        "type": "phrase_prefix",
                        "fields": ["title", "authors"],
                    }
                },
                size=limit * 3,
                source=["title", "authors"],
            )
        except ES_ERRORS as e:
            logger.error(f"Search index suggestions error for '{query}': {e}")
            raise SearchIndexError(str(e)) from e

        entries = (
            (hit["_source"].get("title"), hit["_source"].get("authors"))
            for hit in response["hits"]["hits"]
        )
        suggestions = collect_suggestions(entries, query, limit)
        self.cache.set(cache_key, suggestions, self.settings.cache_ttl_index_suggestions)
        return suggestions

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def is_healthy(self) -> bool:
        """Check if the cluster is reachable and green/yellow."""
        if self.client is None:
            return False
        try:
            health = self.client.cluster.health()
            return health["status"] in ("green", "yellow")
        except ES_ERRORS:
            return False

    def document_count(self) -> int:
        """Number of documents in the books index (0 when unavailable)."""
        if self.client is None:
            return 0
        try:
            return self.client.count(index=self.index_name)["count"]
        except ES_ERRORS as e:
            logger.warning(f"Failed to count documents in {self.index_name}: {e}")
            return 0

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("Elasticsearch connection closed")
