"""
Test Suite for the Book Discovery API

Test Organization:
- conftest.py: Shared fixtures (test database, in-memory Redis, service doubles, sample data)
- test_cache.py: ResponseCache and cache keys
- test_google_books.py: Google Books client (httpx MockTransport)
- test_search_index.py: Elasticsearch index client
- test_hybrid_search.py: Search orchestration and fallbacks
- test_book_store.py: Book and favorites persistence, change propagation
- test_database.py: Declarative metadata and the session dependency
- test_books_api.py: /api/v1/books endpoints
- test_favorites.py: /api/v1/favorites endpoints
- test_auth.py: /api/v1/auth endpoints and token helpers

Running Tests:
    # Run all tests
    pytest

    # Run specific file
    pytest tests/test_hybrid_search.py

    # Run with verbose output
    pytest -v
"""
