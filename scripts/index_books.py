#!/usr/bin/env python3
"""
Books Index Script

Pushes books into the Elasticsearch books index.

Usage:
    # Reindex every stored book
    python scripts/index_books.py

    # Create/update the index mapping first
    python scripts/index_books.py --configure

    # Wipe the index before reindexing (asks for confirmation)
    python scripts/index_books.py --clear
    python scripts/index_books.py --clear --yes

    # Fetch books from Google Books, store and index them
    python scripts/index_books.py --from-google "python programming" --max 200
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.database import SessionLocal
from app.models.book import Book
from app.services.book_store import BookStore
from app.services.book_sync import BookSyncListener, evict_listing_caches
from app.services.cache import ResponseCache
from app.services.google_books import MAX_RESULTS_PER_REQUEST, GoogleBooksClient, normalize_volume
from app.services.search_index import SearchIndexClient, SearchIndexError, create_es_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Stop paging Google Books after this many requests per query
MAX_GOOGLE_PAGES = 25


def reindex_database(index: SearchIndexClient, batch_size: int) -> int:
    """
    Index every stored book in id order.

    Returns:
        Number of documents indexed
    """
    db = SessionLocal()
    try:
        total_books = db.execute(select(func.count(Book.id))).scalar_one()
        if total_books == 0:
            logger.warning("No books found in database")
            return 0

        logger.info(f"Found {total_books} books to index")
        total_batches = (total_books + batch_size - 1) // batch_size
        indexed = 0
        errors = 0

        for batch_num in range(total_batches):
            stmt = select(Book).order_by(Book.id).offset(batch_num * batch_size).limit(batch_size)
            batch = list(db.execute(stmt).scalars().all())

            logger.info(f"Indexing batch {batch_num + 1}/{total_batches} ({len(batch)} books)...")
            try:
                indexed += index.upsert_batch(batch)
            except SearchIndexError as e:
                errors += len(batch)
                logger.error(f"Failed to index batch {batch_num + 1}: {e}")

        logger.info(f"Successfully indexed: {indexed}")
        if errors:
            logger.warning(f"Failed to index: {errors}")
        return indexed
    finally:
        db.close()


def index_from_google(
    index: SearchIndexClient,
    google_books: GoogleBooksClient,
    cache: ResponseCache,
    query: str,
    max_books: int,
) -> int:
    """
    Page through Google Books results for a query, storing and indexing
    books that are not stored yet.

    Returns:
        Number of new books indexed
    """
    db = SessionLocal()
    # Batch indexing below; the listener only evicts caches
    store = BookStore(db, listener=BookSyncListener(index, cache))

    stored = 0
    indexed = 0
    start_index = 0

    try:
        for page in range(MAX_GOOGLE_PAGES):
            if stored >= max_books:
                break

            batch_size = min(MAX_RESULTS_PER_REQUEST, max_books - stored)
            result = google_books.search(query, batch_size, start_index)
            if result.failed:
                logger.error(f"Google Books error on page {page + 1}: {result.error}")
                break
            if not result.items:
                logger.info("No more books found. Stopping.")
                break

            new_books: list[Book] = []
            for raw in result.items:
                if not raw.get("id"):
                    continue
                try:
                    if store.get_by_google_id(raw["id"]) is not None:
                        continue
                    book, created = store.upsert(normalize_volume(raw), reindex=False)
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"Failed to store book {raw['id']}: {e}")
                    continue
                if created:
                    new_books.append(book)

            stored += len(new_books)
            if new_books:
                evict_listing_caches(cache)
                try:
                    indexed += index.upsert_batch(new_books)
                except SearchIndexError as e:
                    logger.error(f"Failed to index page {page + 1}: {e}")

            logger.info(f"Page {page + 1}: {len(new_books)} new books")
            start_index += batch_size
    finally:
        db.close()

    logger.info(f"Stored {stored} new books, indexed {indexed}")
    return indexed


def main() -> int:
    parser = argparse.ArgumentParser(description="Index books in Elasticsearch")
    parser.add_argument(
        "--configure",
        action="store_true",
        help="Create the index or update its mapping",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove every document from the index first",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Do not ask for confirmation before clearing",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Number of books to index per batch (default: 100)",
    )
    parser.add_argument(
        "--from-google",
        metavar="QUERY",
        help="Fetch books matching QUERY from Google Books instead of reindexing the database",
    )
    parser.add_argument(
        "--max",
        type=int,
        default=200,
        help="Maximum number of new books to fetch with --from-google (default: 200)",
    )
    args = parser.parse_args()

    settings = get_settings()
    cache = ResponseCache.from_url(settings.redis_url, namespace=settings.cache_key_prefix)
    index = SearchIndexClient(create_es_client(settings), cache, settings)
    if not index.enabled:
        logger.error("Failed to connect to Elasticsearch")
        return 1

    google_books = GoogleBooksClient(cache, settings)

    try:
        if args.configure:
            logger.info("Configuring index...")
            index.configure()

        if args.clear:
            answer = "y" if args.yes else input(
                f"Are you sure you want to clear the entire '{index.index_name}' index? [y/N] "
            )
            if answer.strip().lower() in ("y", "yes"):
                index.clear_all()
                logger.info("Index cleared")
            else:
                logger.info("Clear skipped")

        if args.from_google:
            index_from_google(index, google_books, cache, args.from_google, args.max)
        else:
            reindex_database(index, args.batch_size)

        logger.info(f"Documents in index: {index.document_count()}")
        return 0
    except SearchIndexError as e:
        logger.error(f"Indexing failed: {e}")
        return 1
    finally:
        google_books.close()
        index.close()
        cache.close()


if __name__ == "__main__":
    sys.exit(main())
