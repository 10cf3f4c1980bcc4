"""
Redis Response Cache

Read-through cache used in front of every expensive composite operation:
hybrid search, index queries, suggestions, book detail pages, listings
and raw Google Books responses.

Features:
- One ResponseCache instance per process, built at startup and injected
- Deterministic key generation with normalized parameters
- Automatic JSON serialization/deserialization
- Graceful degradation when Redis is unavailable

Cache Strategy:
- Expiry is delegated to Redis (SETEX); an expired key reads as a miss
- Every Redis or serialization error is logged and treated as a miss
  or a no-op, never raised to the caller
- Invalidation by exact key or by glob pattern (SCAN, not KEYS)
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


# =============================================================================
# Cache Key Generation
# =============================================================================

def _normalize_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip().casefold()
    if isinstance(value, dict):
        normalized = {
            str(k): sorted(v) if isinstance(v, (list, tuple, set)) else v
            for k, v in value.items()
        }
        return json.dumps(normalized, sort_keys=True, default=str)
    if isinstance(value, (list, tuple, set)):
        return json.dumps(sorted(value, key=str), default=str)
    return str(value)


def make_cache_key(operation: str, *args: Any, **params: Any) -> str:
    """
    Generate a deterministic cache key from an operation and its arguments.

    Positional arguments are identifiers and are kept verbatim (Google
    volume IDs are case-sensitive). Keyword arguments are normalized:
    strings are stripped and case-folded, dict filters get stable key and
    value ordering, None values are dropped. Every part is percent-encoded
    so a ':' or '*' inside a value can never make two keys collide or
    match someone else's invalidation pattern.

    Examples:
        make_cache_key("book_detail", "zyTCAlFPjgYC", "guest")
            -> "book_detail:zyTCAlFPjgYC:guest"
        make_cache_key("books_index", page=1, per_page=20, sort="title", order="asc")
            -> "books_index:order=asc:page=1:per_page=20:sort=title"
        make_cache_key("index_query", q="  JavaScript ", page=2)
            -> "index_query:page=2:q=javascript"

    Args:
        operation: Operation name, used as the key prefix
        *args: Identifiers appended in order
        **params: Named parameters appended in sorted order

    Returns:
        Cache key string
    """
    parts = [operation]

    for arg in args:
        if arg is not None:
            parts.append(quote(str(arg), safe=""))

    for name in sorted(params):
        value = params[name]
        if value is not None:
            parts.append(f"{name}={quote(_normalize_value(value), safe='')}")

    return ":".join(parts)


# =============================================================================
# Response Cache
# =============================================================================

class ResponseCache:
    """
    Key/value cache with per-entry TTL backed by Redis.

    All keys live under a namespace prefix so that clear() only removes
    this application's entries from a shared Redis database.

    When constructed without a client (Redis unreachable at startup) every
    read is a miss and every write is a no-op.
    """

    def __init__(self, client: Optional[redis.Redis], namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "") -> "ResponseCache":
        """
        Connect to Redis and build the cache.

        Returns a disabled cache if the connection fails, allowing the
        application to start without Redis.
        """
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            client.ping()
            logger.info("Successfully connected to Redis")
        except RedisError as e:
            logger.warning(f"Failed to connect to Redis: {e}. Caching disabled.")
            client = None
        return cls(client, namespace=namespace)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value from the cache.

        Returns:
            Cached value (deserialized from JSON) or None if missing,
            expired or unreadable
        """
        if self._client is None:
            return None

        try:
            value = self._client.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

        if value is None:
            logger.debug(f"Cache MISS: {key}")
            return None

        try:
            logger.debug(f"Cache HIT: {key}")
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning(f"Cache JSON decode error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a value, overwriting any existing entry.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time-to-live in seconds

        Returns:
            True if successfully cached, False otherwise
        """
        if self._client is None:
            return False

        try:
            serialized = json.dumps(value, default=str)
            self._client.setex(self._key(key), ttl, serialized)
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except RedisError as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache serialization error for {key}: {e}")
            return False

    def invalidate(self, key: str) -> bool:
        """Delete a single key. Returns True if the delete was issued."""
        if self._client is None:
            return False

        try:
            self._client.delete(self._key(key))
            logger.debug(f"Cache DELETE: {key}")
            return True
        except RedisError as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a glob pattern.

        Examples:
            cache.invalidate_pattern("books_index:*")
            cache.invalidate_pattern("book_detail:zyTCAlFPjgYC:*")

        Returns:
            Number of keys deleted
        """
        if self._client is None:
            return 0

        try:
            keys = list(self._client.scan_iter(match=self._key(pattern), count=500))
            if not keys:
                return 0
            deleted = self._client.delete(*keys)
            logger.debug(f"Cache DELETE PATTERN: {pattern} ({deleted} keys)")
            return deleted
        except RedisError as e:
            logger.warning(f"Cache delete pattern error for {pattern}: {e}")
            return 0

    def clear(self) -> int:
        """Drop every entry in this cache's namespace."""
        deleted = self.invalidate_pattern("*")
        logger.info(f"Cache cleared ({deleted} keys)")
        return deleted

    # -------------------------------------------------------------------------
    # Lifecycle & Monitoring
    # -------------------------------------------------------------------------

    def stats(self) -> dict:
        """Cache statistics for the health endpoint."""
        if self._client is None:
            return {"status": "disconnected"}

        try:
            info = self._client.info("stats")
            return {
                "status": "connected",
                "hits": info.get("keyspace_hits", 0),
                "misses": info.get("keyspace_misses", 0),
                "keys": self._client.dbsize(),
            }
        except RedisError:
            return {"status": "error"}

    def close(self) -> None:
        """Close the Redis connection on shutdown."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Redis connection closed")
