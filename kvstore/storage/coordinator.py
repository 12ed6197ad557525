"""Single-writer mutation coordination.

All changes to the cached record set flow through ``MutationCoordinator``:

1. a mutation section is entered (one at a time per store),
2. the backend commits the change,
3. the cache state is swapped under a short exclusive read/write lock,
4. the version counter is bumped once per committed mutation.

Readers take the shared side of the read/write lock and therefore only ever
wait for step 3, never for backend I/O.
"""

from __future__ import annotations

import bisect
import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from kvstore.core.exceptions import NotFoundError
from kvstore.core.models import Record, Snapshot, utcnow
from kvstore.core.validators import validate_key, validate_record

from .backends.base import BaseBackend

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many readers or one writer; waiting writers block new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class CacheState:
    """The mutable shared state: record mapping, sorted key index, version."""

    def __init__(self):
        self.records: dict[str, Record] = {}
        self.keys: list[str] = []
        self.version = 0

    def upsert(self, record: Record) -> None:
        if record.key not in self.records:
            bisect.insort(self.keys, record.key)
        self.records[record.key] = record

    def discard(self, key: str) -> None:
        if self.records.pop(key, None) is None:
            return
        index = bisect.bisect_left(self.keys, key)
        if index < len(self.keys) and self.keys[index] == key:
            del self.keys[index]
        else:
            self.keys = [candidate for candidate in self.keys if candidate != key]

    def replace(self, records: Iterable[Record]) -> None:
        self.records = {record.key: record for record in records}
        self.keys = sorted(self.records)

    def ordered(self) -> list[Record]:
        return [self.records[key] for key in self.keys]


@dataclass(frozen=True)
class Put:
    """Insert or replace a record."""

    record: Record


@dataclass(frozen=True)
class Remove:
    """Delete an existing record."""

    key: str


@dataclass(frozen=True)
class Evict:
    """Delete a record because its expiry passed.

    Only applies while the cached record still carries ``expires_at`` and
    that moment is in the past; a record rewritten in the meantime is left
    alone.
    """

    key: str
    expires_at: datetime


Operation = Put | Remove | Evict


@dataclass(frozen=True)
class Applied:
    """Outcome of one committed mutation."""

    operation: Operation
    previous: Record | None
    current: Record | None
    version: int


@dataclass(frozen=True)
class PollResult:
    """Answer to a polling client."""

    version: int
    changed: bool
    records: list[Record] | None = None


class MutationSection:
    """Scoped exclusive section handed out by ``MutationCoordinator.section``.

    Reads inside a section see the latest committed state; no other writer
    can change it until the section exits.
    """

    def __init__(self, coordinator: MutationCoordinator):
        self._coordinator = coordinator
        self._state = coordinator._state
        self.applied: list[Applied] = []

    def get(self, key: str) -> Record | None:
        return self._state.records.get(key)

    def records(self) -> list[Record]:
        return self._state.ordered()

    def apply(self, op: Operation, now: datetime | None = None) -> Applied | None:
        """Commit one operation; returns None for a no-op eviction."""
        results = self.apply_batch([op], now=now)
        return results[0] if results else None

    def apply_batch(
        self, ops: list[Operation], now: datetime | None = None
    ) -> list[Applied]:
        """Commit several operations in one backend transaction.

        The version is bumped once per effective operation. Either every
        operation is reflected in the cache or none is.
        """
        now = now or utcnow()
        staged: dict[str, Record | None] = {}
        planned: list[tuple[Operation, Record | None, Record | None]] = []

        def current(key: str) -> Record | None:
            if key in staged:
                return staged[key]
            return self._state.records.get(key)

        for op in ops:
            if isinstance(op, Put):
                validate_record(op.record)
                previous = current(op.record.key)
                staged[op.record.key] = op.record
                planned.append((op, previous, op.record))
            elif isinstance(op, Remove):
                validate_key(op.key)
                previous = current(op.key)
                if previous is None:
                    raise NotFoundError(op.key)
                staged[op.key] = None
                planned.append((op, previous, None))
            elif isinstance(op, Evict):
                previous = current(op.key)
                if (
                    previous is None
                    or previous.expires_at != op.expires_at
                    or not previous.is_expired(now)
                ):
                    logger.debug("skipping eviction of %s; record changed", op.key)
                    continue
                staged[op.key] = None
                planned.append((op, previous, None))
            else:
                raise TypeError(f"unsupported operation: {op!r}")

        if not planned:
            return []

        upserts = [record for record in staged.values() if record is not None]
        deletes = [key for key, record in staged.items() if record is None]
        self._coordinator.backend.commit(upserts, deletes)

        results = []
        with self._coordinator._rw.write_locked():
            for op, previous, record in planned:
                if record is None:
                    self._state.discard(op.key)
                else:
                    self._state.upsert(record)
                self._state.version += 1
                results.append(Applied(op, previous, record, self._state.version))

        logger.info(
            "cache updated; version=%d total_entries=%d",
            self._state.version,
            len(self._state.records),
        )
        self.applied.extend(results)
        return results

    def reset(self, records: Iterable[Record]) -> bool:
        """Replace the cache with records already present in the backend.

        Used after another process wrote to the shared backend. Bumps the
        version once if the content differs.
        """
        incoming = {record.key: record for record in records}
        if incoming == self._state.records:
            return False
        with self._coordinator._rw.write_locked():
            self._state.replace(incoming.values())
            self._state.version += 1
        logger.info(
            "cache reloaded; version=%d total_entries=%d",
            self._state.version,
            len(incoming),
        )
        return True


class MutationCoordinator:
    """Serializes every write to one store's backend and cache."""

    def __init__(self, backend: BaseBackend):
        self.backend = backend
        self._state = CacheState()
        self._mutation_lock = threading.Lock()
        self._rw = ReadWriteLock()

    def install(self, records: Iterable[Record]) -> None:
        """Seed the cache with the initial load; the version is unchanged."""
        with self._mutation_lock, self._rw.write_locked():
            self._state.replace(records)

    @contextmanager
    def section(self) -> Iterator[MutationSection]:
        """Enter the exclusive mutation section.

        The section is released on every exit path, including backend
        failures raised from ``apply``.
        """
        with self._mutation_lock:
            yield MutationSection(self)

    def apply(self, op: Operation, now: datetime | None = None) -> Applied | None:
        """Apply a single operation in its own section."""
        with self.section() as section:
            return section.apply(op, now=now)

    @property
    def version(self) -> int:
        with self._rw.read_locked():
            return self._state.version

    def get(self, key: str) -> Record | None:
        with self._rw.read_locked():
            return self._state.records.get(key)

    def ordered(self) -> list[Record]:
        with self._rw.read_locked():
            return self._state.ordered()

    def expired(self, now: datetime | None = None) -> list[Record]:
        now = now or utcnow()
        with self._rw.read_locked():
            return [r for r in self._state.ordered() if r.is_expired(now)]

    def snapshot(self) -> Snapshot:
        """Version and full record mapping from one consistent point."""
        with self._rw.read_locked():
            return Snapshot(self._state.version, dict(self._state.records))

    def poll(self, since: int | None, now: datetime | None = None) -> PollResult:
        """Report whether anything changed since the client's version.

        Records already expired at ``now`` are left out of the answer.
        """
        now = now or utcnow()
        snapshot = self.snapshot()
        if since is not None and since == snapshot.version:
            return PollResult(version=snapshot.version, changed=False)
        live = [r for r in snapshot.ordered() if not r.is_expired(now)]
        return PollResult(version=snapshot.version, changed=True, records=live)
