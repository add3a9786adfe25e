"""Search helpers for Kiroku archives."""

from .engine import BodyLoader, SearchEngine, SearchHit, SearchMode
from .fuzzy import FuzzyMatch, fuzzy_match, fuzzy_score
from .text import normalize_query, preview

__all__ = [
    "BodyLoader",
    "FuzzyMatch",
    "SearchEngine",
    "SearchHit",
    "SearchMode",
    "fuzzy_match",
    "fuzzy_score",
    "normalize_query",
    "preview",
]
