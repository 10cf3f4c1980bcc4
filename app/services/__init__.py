"""
Services Package

Business logic, kept separate from HTTP handling:
- cache.py: Redis response cache and cache key generation
- google_books.py: Google Books client and payload normalization
- search_index.py: Elasticsearch books index (query, facets, batch indexing)
- hybrid_search.py: Index + Google Books search orchestration
- book_store.py: Book persistence keyed on the Google Books volume ID
- book_sync.py: Propagates book writes to the index and evicts caches
- favorites.py: Per-user favorites
- rate_limiter.py: Rate limiting with slowapi and Redis backend
- security.py: Password hashing and JWT utilities
"""
