"""
Genre vocabulary used by the catalog genre filter.
"""
from typing import Iterable

STANDARD_GENRES = (
    "animation",
    "auto",
    "business",
    "classic",
    "comedy",
    "cooking",
    "culture",
    "documentary",
    "education",
    "entertainment",
    "family",
    "general",
    "kids",
    "legislative",
    "lifestyle",
    "movies",
    "music",
    "news",
    "outdoor",
    "relax",
    "religious",
    "science",
    "series",
    "shop",
    "sports",
    "travel",
    "weather",
    "xxx",
)

DEFAULT_CATEGORY = "general"

_STANDARD = frozenset(STANDARD_GENRES)


def is_standard_genre(genre: str) -> bool:
    return genre.lower() in _STANDARD


def collect_custom_genres(categories: Iterable[str]) -> list[str]:
    """Categories outside the standard vocabulary, first-seen order, no duplicates."""
    seen: dict[str, None] = {}
    for category in categories:
        if category and not is_standard_genre(category):
            seen.setdefault(category, None)
    return list(seen)


def genre_options(custom_genres: Iterable[str]) -> list[str]:
    """Standard plus custom genres, sorted, for the manifest genre extra."""
    return sorted(set(STANDARD_GENRES) | set(custom_genres))
