#!/usr/bin/env python3
"""
Suggestions Cache Warmer

Pre-fetches autocomplete suggestions for common prefixes and subjects so
the first keystrokes of a search are answered from Redis.

Usage:
    python scripts/warm_suggestions.py
    python scripts/warm_suggestions.py --popular-only
    python scripts/warm_suggestions.py --limit 50 --delay 0.5
"""

import argparse
import logging
import string
import sys
import time
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.config import get_settings
from app.services.cache import ResponseCache
from app.services.google_books import GoogleBooksClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

COMMON_BIGRAMS = [
    "th", "he", "in", "er", "an", "re", "ed", "nd", "on", "en", "at", "ou",
    "it", "is", "or", "ti", "hi", "st", "io", "le", "as", "ar", "ri", "ro",
]

POPULAR_SUBJECTS = [
    "math", "science", "history", "art", "music", "cook", "travel", "business",
    "tech", "self", "python", "java", "javascript", "react", "node", "web",
    "mobile", "data", "machine", "learn", "fiction", "novel", "romance",
    "mystery", "fantasy", "thriller", "horror", "adventure", "health",
    "fitness", "diet", "mind", "brain", "psychology", "philosophy", "religion",
]

# Every prefix of these is warmed as well
PREFIX_SUBJECTS = [
    "programming", "mathematics", "psychology", "philosophy",
    "science", "history", "business", "technology",
]

POPULAR_ONLY_MAX = 20


def popular_terms() -> list[str]:
    return [*string.ascii_lowercase, *COMMON_BIGRAMS, *POPULAR_SUBJECTS]


def all_terms() -> list[str]:
    """Popular terms followed by every prefix of the subject words, without repeats."""
    terms = popular_terms()
    for subject in PREFIX_SUBJECTS:
        terms.extend(subject[:i] for i in range(1, len(subject) + 1))
    return list(dict.fromkeys(terms))


def warm(google_books: GoogleBooksClient, terms: list[str], delay: float, limit: int = 5) -> tuple[int, int]:
    """
    Fetch suggestions for each term.

    Returns:
        Tuple of (terms with suggestions, terms without)
    """
    warmed = 0
    empty = 0

    for position, term in enumerate(terms, start=1):
        if google_books.get_suggestions(term, limit):
            warmed += 1
        else:
            empty += 1
            logger.warning(f"No suggestions for '{term}'")

        if position % 10 == 0:
            logger.info(f"Warmed {position}/{len(terms)} terms")

        if delay > 0:
            time.sleep(delay)

    return warmed, empty


def main() -> int:
    parser = argparse.ArgumentParser(description="Pre-warm the suggestions cache")
    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of terms to warm (default: 100)",
    )
    parser.add_argument(
        "--popular-only",
        action="store_true",
        help=f"Only warm the {POPULAR_ONLY_MAX} most popular terms",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.2,
        help="Seconds to wait between Google Books calls (default: 0.2)",
    )
    args = parser.parse_args()

    if args.popular_only:
        terms = popular_terms()[: min(POPULAR_ONLY_MAX, args.limit)]
    else:
        terms = all_terms()[: args.limit]

    settings = get_settings()
    cache = ResponseCache.from_url(settings.redis_url, namespace=settings.cache_key_prefix)
    if not cache.enabled:
        logger.error("Redis is unavailable; nothing to warm")
        return 1

    google_books = GoogleBooksClient(cache, settings)
    logger.info(f"Pre-warming suggestions for {len(terms)} terms...")

    try:
        warmed, empty = warm(google_books, terms, args.delay)
    finally:
        google_books.close()
        cache.close()

    logger.info(f"Successfully warmed: {warmed} terms")
    if empty:
        logger.warning(f"No suggestions: {empty} terms")
    return 0


if __name__ == "__main__":
    sys.exit(main())
