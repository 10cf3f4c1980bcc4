"""
Autocomplete suggestion extraction.

Every suggestion tier (live Google Books, the search index, the local
database) produces (title, authors) pairs; this module turns them into
the same ordered, de-duplicated list of strings.
"""

from collections.abc import Iterable


def collect_suggestions(
    entries: Iterable[tuple[str | None, list[str] | None]],
    query: str,
    limit: int,
) -> list[str]:
    """
    Extract unique titles and author names containing the query.

    Order is first-seen: entries are walked in the given order and each
    title comes before its authors. Matching and de-duplication are both
    case-insensitive; the first spelling seen is kept.

    Example:
        >>> collect_suggestions([("JavaScript: The Good Parts", ["Douglas Crockford"])], "java", 5)
        ['JavaScript: The Good Parts']
    """
    needle = query.strip().casefold()
    if not needle or limit <= 0:
        return []

    suggestions: list[str] = []
    seen: set[str] = set()

    for title, authors in entries:
        for candidate in [title, *(authors or [])]:
            if not candidate:
                continue
            folded = candidate.casefold()
            if needle in folded and folded not in seen:
                seen.add(folded)
                suggestions.append(candidate)

        if len(suggestions) >= limit:
            break

    return suggestions[:limit]
