"""Ranked fuzzy search over cached records."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import msgspec

from kvstore.core.models import Record, SearchTarget

from .fuzzy import score

logger = logging.getLogger(__name__)


class SearchMatch(msgspec.Struct, frozen=True, kw_only=True):
    """A record with the best-scoring string that matched the query."""

    key: str
    record: Record
    score: int
    matched: str


class FuzzySearchEngine:
    """Ranks records by how well their key and/or tags match a query.

    The engine is stateless; it scores whatever records it is handed and
    never touches storage.
    """

    def search(
        self,
        records: Iterable[Record],
        query: str,
        target: SearchTarget | str = SearchTarget.BOTH,
        limit: int = 10,
    ) -> list[SearchMatch]:
        """Return up to ``limit`` matches, best first.

        Args:
            records: Candidate records
            query: Fuzzy query; blank queries match nothing
            target: Whether keys, tags or both are considered
            limit: Maximum number of results

        Ties are broken by the matched string, then by key.
        """
        query = query.strip()
        if not query or limit <= 0:
            return []
        target = SearchTarget(target)

        matches = []
        for record in records:
            best = self._best(record, query, target)
            if best is not None:
                matches.append(best)

        matches.sort(key=lambda m: (-m.score, m.matched, m.key))
        logger.debug(
            "search %r over %s: %d matches", query, target.value, len(matches)
        )
        return matches[:limit]

    def _best(
        self, record: Record, query: str, target: SearchTarget
    ) -> SearchMatch | None:
        candidates = []
        if target.includes_keys:
            candidates.append(record.key)
        if target.includes_tags:
            candidates.extend(record.tags)

        best: SearchMatch | None = None
        for candidate in candidates:
            value = score(query, candidate)
            if value is None:
                continue
            if (
                best is None
                or value > best.score
                or (value == best.score and candidate < best.matched)
            ):
                best = SearchMatch(
                    key=record.key, record=record, score=value, matched=candidate
                )
        return best
