"""Fuzzy scoring of a query against a single candidate string.

Matching is a case-insensitive subsequence test. A match falls into one of
four tiers, and within a tier the alignment with the most adjacent matched
characters wins, then the one that starts earliest.
"""

from __future__ import annotations

import enum


class MatchTier(enum.IntEnum):
    """Match quality, best last."""

    SUBSEQUENCE = 0
    SUBSTRING = 1
    PREFIX = 2
    EXACT = 3


TIER_WEIGHT = 10_000
CONTIGUITY_WEIGHT = 100
MAX_CONTIGUITY = 98
MAX_START = 99

Alignment = tuple[int, int]


def classify(query: str, candidate: str) -> MatchTier:
    """Tier of a known match of ``query`` in ``candidate`` (both lower-cased)."""
    if query == candidate:
        return MatchTier.EXACT
    if candidate.startswith(query):
        return MatchTier.PREFIX
    if query in candidate:
        return MatchTier.SUBSTRING
    return MatchTier.SUBSEQUENCE


def best_alignment(query: str, candidate: str) -> tuple[int, int] | None:
    """Best subsequence alignment as ``(adjacent_pairs, start)``.

    Adjacent pairs counts consecutive query characters matched at
    consecutive candidate positions. Among alignments with the most
    adjacent pairs the earliest start is chosen.
    """
    if not query or len(query) > len(candidate):
        return None

    n = len(candidate)
    # prev[i]: best (adjacent_pairs, -start) with the previous query char at i
    prev: list[Alignment | None] = [
        (0, -i) if ch == query[0] else None for i, ch in enumerate(candidate)
    ]
    for qc in query[1:]:
        current: list[Alignment | None] = [None] * n
        running: Alignment | None = None
        for i in range(n):
            if i >= 2 and prev[i - 2] is not None:
                if running is None or prev[i - 2] > running:
                    running = prev[i - 2]
            if candidate[i] != qc:
                continue
            best = running
            if i >= 1 and prev[i - 1] is not None:
                adjacent = (prev[i - 1][0] + 1, prev[i - 1][1])
                if best is None or adjacent > best:
                    best = adjacent
            current[i] = best
        prev = current

    finished = [alignment for alignment in prev if alignment is not None]
    if not finished:
        return None
    pairs, negative_start = max(finished)
    return pairs, -negative_start


def score(query: str, candidate: str) -> int | None:
    """Score ``candidate`` for ``query``; None when it does not match.

    Higher is better. Any match in a higher tier outranks every match in a
    lower tier.
    """
    query = query.lower()
    candidate = candidate.lower()
    alignment = best_alignment(query, candidate)
    if alignment is None:
        return None
    tier = classify(query, candidate)
    pairs, start = alignment
    return (
        int(tier) * TIER_WEIGHT
        + min(pairs, MAX_CONTIGUITY) * CONTIGUITY_WEIGHT
        + (MAX_START - min(start, MAX_START))
    )
