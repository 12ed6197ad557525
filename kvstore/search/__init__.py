"""Fuzzy search and recent-access history."""

from .engine import FuzzySearchEngine, SearchMatch
from .fuzzy import MatchTier, score
from .history import DEFAULT_HISTORY_LIMIT, RecentHistory

__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "FuzzySearchEngine",
    "MatchTier",
    "RecentHistory",
    "SearchMatch",
    "score",
]
