"""
pytest Fixtures for Book Discovery API Tests

Shared fixtures:
- engine / db_session: SQLite in-memory database, rolled back per test
- redis_client / cache: ResponseCache backed by an in-memory Redis double
- search_index / google_books: MagicMock service clients
- client: TestClient with all of the above injected
- sample data: books, Google Books volumes, users and auth headers

For database tests:
- session scope for engine (expensive to create)
- function scope for sessions (isolation between tests)
"""

# =============================================================================
# TEST ENVIRONMENT SETUP
# =============================================================================
# IMPORTANT: Set environment variables BEFORE importing the app
import os

os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-at-least-32-characters-long"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ELASTICSEARCH_ENABLED"] = "false"
os.environ["GOOGLE_BOOKS_REQUEST_DELAY"] = "0"
# Nothing listens here; the app starts with caching disabled
os.environ["REDIS_URL"] = "redis://localhost:6399/0"

import fnmatch
import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.dependencies import get_google_books, get_response_cache, get_search_index
from app.main import app
from app.models import Book, User
from app.services.book_store import BookStore
from app.services.cache import ResponseCache
from app.services.google_books import ExternalSearchResult, GoogleBooksClient, normalize_volume
from app.services.search_index import IndexQueryResult, SearchIndexClient
from app.services.security import create_access_token, hash_password


# =============================================================================
# REDIS TEST DOUBLE
# =============================================================================
class InMemoryRedis:
    """
    The subset of the redis.Redis API used by ResponseCache.

    Expiry follows a clock that tests can move forward with advance().
    """

    def __init__(self) -> None:
        self.data: dict[str, tuple[str, float]] = {}
        self._offset = 0.0

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def advance(self, seconds: float) -> None:
        self._offset += seconds

    def _live(self, key: str) -> bool:
        entry = self.data.get(key)
        if entry is None:
            return False
        if entry[1] <= self._now():
            del self.data[key]
            return False
        return True

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        return self.data[key][0] if self._live(key) else None

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.data[key] = (value, self._now() + ttl)
        return True

    def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key):
                del self.data[key]
                deleted += 1
        return deleted

    def scan_iter(self, match: str = "*", count: int | None = None):
        return iter([key for key in list(self.data) if self._live(key) and fnmatch.fnmatchcase(key, match)])

    def info(self, section: str | None = None) -> dict:
        return {"keyspace_hits": 0, "keyspace_misses": 0}

    def dbsize(self) -> int:
        return len([key for key in list(self.data) if self._live(key)])

    def close(self) -> None:
        pass


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def cache(redis_client: InMemoryRedis) -> ResponseCache:
    return ResponseCache(redis_client, namespace="test:")


# =============================================================================
# DATABASE FIXTURES
# =============================================================================
# SQLite in-memory: fast and isolated. JSON columns and ilike work the same;
# PostgreSQL-specific behaviour needs an integration database.

@pytest.fixture(scope="session")
def engine():
    """
    SQLite in-memory engine shared by the whole session.

    StaticPool keeps the single connection alive; without it the
    in-memory database would disappear between connections.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    """
    Fresh session per test, wrapped in a transaction that is rolled back.
    """
    TestSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )

    connection = engine.connect()
    transaction = connection.begin()
    session = TestSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# =============================================================================
# SERVICE DOUBLES
# =============================================================================

@pytest.fixture
def search_index() -> MagicMock:
    """
    Search index that answers with no hits and accepts every write.
    """
    index = MagicMock(spec=SearchIndexClient)
    index.query.return_value = IndexQueryResult()
    index.upsert_batch.side_effect = lambda books: len(books)
    index.suggest.return_value = []
    index.is_healthy.return_value = False
    return index


@pytest.fixture
def google_books() -> MagicMock:
    """
    Google Books client that finds nothing.

    normalize_and_upsert keeps its real behaviour so detail pages persist
    fetched volumes through the store.
    """
    source = MagicMock(spec=GoogleBooksClient)
    source.search.return_value = ExternalSearchResult()
    source.get_detail.return_value = None
    source.get_suggestions.return_value = []
    source.normalize_and_upsert.side_effect = (
        lambda store, raw, reindex=True: store.upsert(normalize_volume(raw), reindex=reindex)[0]
    )
    return source


@pytest.fixture(scope="function")
def client(
    db_session: Session,
    cache: ResponseCache,
    search_index: MagicMock,
    google_books: MagicMock,
) -> Generator[TestClient, None, None]:
    """
    Test client with the test database and service doubles injected.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Session cleanup handled by db_session fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_response_cache] = lambda: cache
    app.dependency_overrides[get_search_index] = lambda: search_index
    app.dependency_overrides[get_google_books] = lambda: google_books

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

def build_volume(
    volume_id: str,
    title: str,
    authors: list[str] | None = None,
    **info: Any,
) -> dict[str, Any]:
    """A Google Books volume resource as returned by /volumes."""
    volume_info = {"title": title, "authors": authors or []}
    volume_info.update(info)
    return {"id": volume_id, "volumeInfo": volume_info}


@pytest.fixture
def make_volume() -> Callable[..., dict[str, Any]]:
    return build_volume


@pytest.fixture
def store(db_session: Session) -> BookStore:
    """BookStore without a change listener."""
    return BookStore(db_session)


@pytest.fixture
def sample_book(db_session: Session) -> Book:
    book = Book(
        google_books_id="zyTCAlFPjgYC",
        title="Eloquent JavaScript",
        authors=["Marijn Haverbeke"],
        description="A modern introduction to programming.",
        publisher="No Starch Press",
        published_date="2018-12-04",
        page_count=472,
        categories=["Computers"],
        language="en",
        isbn_13="9781593279509",
        average_rating=4.5,
        ratings_count=120,
    )
    db_session.add(book)
    db_session.commit()
    db_session.refresh(book)
    return book


@pytest.fixture
def multiple_books(db_session: Session) -> list[Book]:
    """15 books with distinct titles and ratings, for pagination and sorting."""
    books = []
    for i in range(15):
        book = Book(
            google_books_id=f"vol{i:03d}",
            title=f"Test Book {chr(ord('A') + i)}",
            authors=[f"Author {i}"],
            categories=[],
            average_rating=round(1.0 + i * 0.25, 2),
            ratings_count=i * 10,
        )
        books.append(book)
        db_session.add(book)

    db_session.commit()
    for book in books:
        db_session.refresh(book)
    return books


@pytest.fixture
def sample_user(db_session: Session) -> User:
    user = User(
        name="Test User",
        email="testuser@example.com",
        hashed_password=hash_password("SecurePass123"),
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def second_user(db_session: Session) -> User:
    user = User(
        name="Second User",
        email="seconduser@example.com",
        hashed_password=hash_password("SecurePass456"),
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def superuser(db_session: Session) -> User:
    user = User(
        name="Admin User",
        email="admin@example.com",
        hashed_password=hash_password("AdminPass123"),
        is_active=True,
        is_superuser=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def auth_headers(sample_user: User) -> dict[str, str]:
    return bearer(sample_user)


@pytest.fixture
def admin_headers(superuser: User) -> dict[str, str]:
    return bearer(superuser)
