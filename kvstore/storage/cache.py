"""Cache engine: the in-memory view of one store.

The engine loads every record from its backend once, serves all reads from
memory, and routes every write through a ``MutationCoordinator`` so the
backend is always written before the cache changes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import msgspec

from kvstore.core.exceptions import (
    BackendWriteError,
    KvStoreError,
    LoadError,
    NotFoundError,
    ValidationError,
)
from kvstore.core.models import (
    Record,
    SearchTarget,
    Snapshot,
    normalize_tags,
    utcnow,
)
from kvstore.core.validators import (
    require_non_empty,
    require_positive_minutes,
    validate_key,
    validate_record,
)
from kvstore.search.engine import FuzzySearchEngine, SearchMatch

from .backends.base import BaseBackend
from .coordinator import Evict, MutationCoordinator, PollResult, Put, Remove

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutResult:
    """Record written by ``put`` and the live record it replaced, if any."""

    record: Record
    previous: Record | None

    @property
    def created(self) -> bool:
        return self.previous is None


def parse_rows(rows: Iterable[dict[str, Any]]) -> list[Record]:
    """Convert raw backend rows to records, skipping malformed ones."""
    records = []
    for row in rows:
        key = row.get("key")
        try:
            if not isinstance(row.get("tags"), list):
                raise ValidationError("tags", "tags column is not a JSON list")
            record = validate_record(Record.from_dict(key, row))
        except (KeyError, TypeError, msgspec.ValidationError, ValidationError) as e:
            logger.warning("skipping malformed row %r: %s", key, e)
            continue
        records.append(record)
    return records


def _single_tag(tag: str) -> str:
    normalized = normalize_tags([tag])
    if not normalized:
        raise ValidationError("tag", "field 'tag' cannot be empty")
    return normalized[0]


class CacheEngine:
    """Authoritative in-memory record set for one backend.

    Expired records are never returned: reads that meet one trigger a
    conditional eviction and treat the key as absent.
    """

    def __init__(
        self,
        backend: BaseBackend,
        search_engine: FuzzySearchEngine | None = None,
    ):
        self.backend = backend
        self.search_engine = search_engine or FuzzySearchEngine()
        self.coordinator = MutationCoordinator(backend)
        self._change_token: int | None = None
        self._loaded = False

    def load(self) -> CacheEngine:
        """Open the backend and read every record into memory.

        Raises:
            LoadError: If the backend cannot be opened or read.
        """
        self.backend.open()
        try:
            rows = self.backend.read_all()
        except LoadError:
            raise
        except Exception as e:
            raise LoadError(self.backend.location, str(e)) from e

        records = parse_rows(rows)
        self.coordinator.install(records)
        self._change_token = self.backend.change_token()
        self._loaded = True
        logger.info(
            "cache loaded from %s; total_entries=%d",
            self.backend.location,
            len(records),
        )
        return self

    @property
    def version(self) -> int:
        return self.coordinator.version

    def _evict(self, record: Record, now: datetime | None = None) -> bool:
        if record.expires_at is None:
            return False
        try:
            applied = self.coordinator.apply(
                Evict(record.key, record.expires_at), now=now
            )
        except BackendWriteError as e:
            logger.warning("failed to evict expired key %s: %s", record.key, e)
            return False
        if applied is not None:
            logger.info("evicted expired key %s", record.key)
        return applied is not None

    def _live(self, now: datetime | None = None) -> list[Record]:
        now = now or utcnow()
        live = []
        for record in self.coordinator.ordered():
            if record.is_expired(now):
                self._evict(record, now)
            else:
                live.append(record)
        return live

    def get(self, key: str) -> Record:
        """Look up a live record.

        Raises:
            NotFoundError: If the key is absent or expired.
        """
        validate_key(key)
        record = self.coordinator.get(key)
        if record is None:
            raise NotFoundError(key)
        now = utcnow()
        if record.is_expired(now):
            self._evict(record, now)
            raise NotFoundError(key)
        return record

    def put(
        self,
        key: str,
        value: str,
        tags: Iterable[str] | None = None,
        ttl_minutes: int | None = None,
    ) -> PutResult:
        """Create or update a record.

        Updating keeps ``created_at``. Tags replace the existing set only
        when given; the expiry is replaced only when ``ttl_minutes`` is given.
        An expired record is replaced by a brand-new one.
        """
        validate_key(key)
        if ttl_minutes is not None:
            require_positive_minutes(ttl_minutes)
        now = utcnow()
        with self.coordinator.section() as section:
            existing = section.get(key)
            if existing is not None and existing.is_expired(now):
                existing = None
            if existing is None:
                record = Record.create(key, value, tags or (), ttl_minutes, now=now)
            else:
                record = existing.updated(value=value, tags=tags, now=now)
                if ttl_minutes is not None:
                    record = record.with_ttl(ttl_minutes, now=now)
            section.apply(Put(record), now=now)
        return PutResult(record=record, previous=existing)

    def remove(self, key: str) -> Record:
        """Delete a live record and return it.

        Raises:
            NotFoundError: If the key is absent or expired.
        """
        validate_key(key)
        now = utcnow()
        with self.coordinator.section() as section:
            existing = section.get(key)
            if existing is None:
                raise NotFoundError(key)
            if existing.is_expired(now):
                try:
                    section.apply(Evict(key, existing.expires_at), now=now)
                except BackendWriteError as e:
                    logger.warning("failed to evict expired key %s: %s", key, e)
                raise NotFoundError(key)
            section.apply(Remove(key), now=now)
        return existing

    def list(self) -> list[str]:
        """Live keys in ascending order."""
        return [record.key for record in self._live()]

    def records(self) -> list[Record]:
        """Live records in ascending key order."""
        return self._live()

    def sweep(self, now: datetime | None = None) -> int:
        """Evict every expired record; returns how many were removed.

        Failed evictions are logged and left for the next sweep.
        """
        now = now or utcnow()
        evicted = 0
        for record in self.coordinator.expired(now):
            if self._evict(record, now):
                evicted += 1
        if evicted:
            logger.info("sweep evicted %d expired entries", evicted)
        return evicted

    def snapshot(self) -> Snapshot:
        """Consistent view of the live records and the version they belong to."""
        snapshot = self.coordinator.snapshot()
        now = utcnow()
        live = {k: r for k, r in snapshot.records.items() if not r.is_expired(now)}
        return Snapshot(snapshot.version, live)

    def poll(self, since: int | None = None) -> PollResult:
        """Changes since ``since`` for a polling client."""
        self.refresh()
        return self.coordinator.poll(since)

    def refresh(self) -> bool:
        """Reload from the backend if another process committed to it.

        The check, the read and the swap happen in one mutation section,
        so a local write cannot commit between them.

        Returns True when the cache content changed.
        """
        if not self._loaded:
            return False
        with self.coordinator.section() as section:
            token = self.backend.change_token()
            if token is None or token == self._change_token:
                return False
            try:
                rows = self.backend.read_all()
            except KvStoreError:
                raise
            except Exception as e:
                logger.warning("refresh from %s failed: %s", self.backend.location, e)
                return False
            changed = section.reset(parse_rows(rows))
            self._change_token = token
        return changed

    def search(
        self,
        query: str,
        target: SearchTarget = SearchTarget.BOTH,
        limit: int = 10,
    ) -> list[SearchMatch]:
        """Fuzzy search over the live records."""
        return self.search_engine.search(self._live(), query, target, limit)

    def add_tag(self, key: str, tag: str) -> tuple[Record, bool]:
        """Attach ``tag`` to a record; returns the record and whether it changed."""
        validate_key(key)
        tag = _single_tag(tag)
        now = utcnow()
        with self.coordinator.section() as section:
            existing = self._require_live(section.get(key), key, now)
            if tag in existing.tags:
                return existing, False
            record = existing.updated(tags=(*existing.tags, tag), now=now)
            section.apply(Put(record), now=now)
        return record, True

    def remove_tag(self, key: str, tag: str) -> Record:
        """Detach ``tag`` from a record.

        Raises:
            NotFoundError: If the record or the tag is missing.
        """
        validate_key(key)
        tag = _single_tag(tag)
        now = utcnow()
        with self.coordinator.section() as section:
            existing = self._require_live(section.get(key), key, now)
            if tag not in existing.tags:
                raise NotFoundError(f"'{tag}' on '{key}'", what="tag")
            record = existing.updated(
                tags=[t for t in existing.tags if t != tag], now=now
            )
            section.apply(Put(record), now=now)
        return record

    def extend_ttl(self, key: str, minutes: int) -> Record:
        """Push a record's expiry back by ``minutes``."""
        validate_key(key)
        require_positive_minutes(minutes, "minutes")
        now = utcnow()
        with self.coordinator.section() as section:
            existing = self._require_live(section.get(key), key, now)
            record = existing.extended(minutes, now=now)
            section.apply(Put(record), now=now)
        return record

    def rename_tag(self, old: str, new: str) -> int:
        """Rename a tag on every live record carrying it.

        Returns the number of records changed.
        """
        old = _single_tag(require_non_empty(old, "from"))
        new = _single_tag(require_non_empty(new, "to"))
        if old == new:
            raise ValidationError("to", "field 'from' and 'to' must differ")
        now = utcnow()
        with self.coordinator.section() as section:
            ops = []
            for record in section.records():
                if record.is_expired(now) or old not in record.tags:
                    continue
                tags = [new if t == old else t for t in record.tags]
                ops.append(Put(record.updated(tags=tags, now=now)))
            if not ops:
                raise NotFoundError(old, what="tag")
            section.apply_batch(ops, now=now)
        logger.info("renamed tag %s to %s on %d records", old, new, len(ops))
        return len(ops)

    def delete_tag(self, tag: str) -> int:
        """Remove a tag from every live record carrying it."""
        tag = _single_tag(require_non_empty(tag, "tag"))
        now = utcnow()
        with self.coordinator.section() as section:
            ops = []
            for record in section.records():
                if record.is_expired(now) or tag not in record.tags:
                    continue
                tags = [t for t in record.tags if t != tag]
                ops.append(Put(record.updated(tags=tags, now=now)))
            if not ops:
                raise NotFoundError(tag, what="tag")
            section.apply_batch(ops, now=now)
        logger.info("deleted tag %s from %d records", tag, len(ops))
        return len(ops)

    def import_records(self, records: list[Record], replace: bool = False) -> int:
        """Upsert already-built records in one transaction.

        With ``replace`` every key missing from ``records`` is removed in the
        same transaction. Returns the number of records written.
        """
        with self.coordinator.section() as section:
            ops: list[Put | Remove] = [Put(record) for record in records]
            if replace:
                incoming = {record.key for record in records}
                ops.extend(
                    Remove(existing.key)
                    for existing in section.records()
                    if existing.key not in incoming
                )
            if not ops:
                return 0
            section.apply_batch(ops)
        return len(records)

    @staticmethod
    def _require_live(record: Record | None, key: str, now: datetime) -> Record:
        if record is None or record.is_expired(now):
            raise NotFoundError(key)
        return record
