"""Core data models for stored records.

This module defines the immutable structures shared by every layer of the
store:

- Record: a key with its value, normalized tags and timestamps
- Snapshot: a consistent, versioned view of all records
- RecentEntry: a single access event in the recent history
- SearchTarget: which strings a fuzzy search considers

All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

import msgspec


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_tags(raw: Iterable[str]) -> tuple[str, ...]:
    """Normalize a tag collection for storage.

    Tags are trimmed and lower-cased; empty tags are dropped and duplicates
    collapse, so the result is a sorted tuple of unique tags.
    """
    cleaned = {tag.strip().lower() for tag in raw}
    cleaned.discard("")
    return tuple(sorted(cleaned))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Record(msgspec.Struct, frozen=True, kw_only=True):
    """Immutable stored record.

    Records are never mutated in place; updates produce a new Record that
    keeps the original ``created_at``.
    """

    key: str
    value: str
    tags: tuple[str, ...] = ()
    created_at: datetime = msgspec.field(default_factory=utcnow)
    updated_at: datetime = msgspec.field(default_factory=utcnow)
    expires_at: datetime | None = None

    @classmethod
    def create(
        cls,
        key: str,
        value: str,
        tags: Iterable[str] = (),
        ttl_minutes: int | None = None,
        now: datetime | None = None,
    ) -> Record:
        """Build a brand-new record."""
        now = now or utcnow()
        expires_at = now + timedelta(minutes=ttl_minutes) if ttl_minutes else None
        return cls(
            key=key,
            value=value,
            tags=normalize_tags(tags),
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )

    def updated(
        self,
        value: str | None = None,
        tags: Iterable[str] | None = None,
        now: datetime | None = None,
    ) -> Record:
        """Return a copy with a new value and/or tags.

        Omitted fields keep their current contents; ``expires_at`` and
        ``created_at`` are always carried over.
        """
        return msgspec.structs.replace(
            self,
            value=self.value if value is None else value,
            tags=self.tags if tags is None else normalize_tags(tags),
            updated_at=now or utcnow(),
        )

    def with_ttl(self, ttl_minutes: int | None, now: datetime | None = None) -> Record:
        """Return a copy expiring ``ttl_minutes`` from now (None = permanent)."""
        now = now or utcnow()
        expires_at = now + timedelta(minutes=ttl_minutes) if ttl_minutes else None
        return msgspec.structs.replace(self, expires_at=expires_at, updated_at=now)

    def extended(self, ttl_minutes: int, now: datetime | None = None) -> Record:
        """Return a copy whose expiry is pushed back by ``ttl_minutes``.

        An expired or permanent record is extended starting from now.
        """
        now = now or utcnow()
        base = max(self.expires_at, now) if self.expires_at else now
        return msgspec.structs.replace(
            self, expires_at=base + timedelta(minutes=ttl_minutes), updated_at=now
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the record's expiry has passed."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def ttl_remaining_minutes(self, now: datetime | None = None) -> int | None:
        """Whole minutes until expiry, or None for permanent records."""
        if self.expires_at is None:
            return None
        remaining = self.expires_at - (now or utcnow())
        return int(remaining.total_seconds() // 60)

    def summary(self) -> str:
        """One-line human readable rendering."""
        if not self.tags:
            return f"{self.key} = {self.value}"
        return f"{self.key} = {self.value} [tags: {', '.join(self.tags)}]"

    def describe(self) -> str:
        """Quoted value with its tags, used in mutation messages."""
        if not self.tags:
            return f"'{self.value}'"
        return f"'{self.value}' (tags: {', '.join(self.tags)})"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary (without the key)."""
        return {
            "value": self.value,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> Record:
        """Create a Record from its dictionary representation.

        Tags are normalized and timestamps coerced to UTC. Missing
        timestamps default to now.
        """
        now = utcnow()
        record = msgspec.convert(
            {
                "key": key,
                "value": data["value"],
                "tags": list(data.get("tags") or ()),
                "created_at": data.get("created_at") or now.isoformat(),
                "updated_at": data.get("updated_at") or now.isoformat(),
                "expires_at": data.get("expires_at") or None,
            },
            cls,
        )
        return msgspec.structs.replace(
            record,
            tags=normalize_tags(record.tags),
            created_at=_as_utc(record.created_at),
            updated_at=_as_utc(record.updated_at),
            expires_at=_as_utc(record.expires_at) if record.expires_at else None,
        )


class Snapshot(msgspec.Struct, frozen=True):
    """A consistent view of every record at one point in the mutation history."""

    version: int
    records: dict[str, Record]

    def ordered(self) -> list[Record]:
        """Records sorted by key."""
        return [self.records[key] for key in sorted(self.records)]


class RecentEntry(msgspec.Struct, frozen=True):
    """A single access event."""

    key: str
    accessed_at: datetime


class SearchTarget(str, enum.Enum):
    """Strings a fuzzy search is allowed to match."""

    KEYS = "keys"
    TAGS = "tags"
    BOTH = "both"

    @property
    def includes_keys(self) -> bool:
        return self in (SearchTarget.KEYS, SearchTarget.BOTH)

    @property
    def includes_tags(self) -> bool:
        return self in (SearchTarget.TAGS, SearchTarget.BOTH)
