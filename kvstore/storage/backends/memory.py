"""In-memory storage backend for testing."""

import threading
from copy import deepcopy
from typing import Any

from kvstore.core.exceptions import BackendWriteError, LoadError
from kvstore.core.models import Record

from .base import BaseBackend


class MemoryBackend(BaseBackend):
    """In-memory storage backend for testing purposes.

    Commits can be made to fail on demand with ``fail_next_commits``, and
    rows can be injected behind the cache's back with ``write_external`` to
    simulate another process sharing the store.
    """

    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self._rows: dict[str, dict[str, Any]] = {
            row["key"]: deepcopy(row) for row in rows or []
        }
        self._opened = False
        self._external_writes = 0
        self.unavailable = False
        self.fail_commits = 0
        self.commit_count = 0
        self._lock = threading.Lock()

    @property
    def location(self) -> str:
        return ":memory:"

    def open(self) -> None:
        """Open the backend (fails only when marked unavailable)."""
        if self.unavailable:
            raise LoadError(self.location, "backend marked unavailable")
        self._opened = True

    def read_all(self) -> list[dict[str, Any]]:
        """Read all rows in key order."""
        return [deepcopy(self._rows[key]) for key in sorted(self._rows)]

    def commit(self, upserts: list[Record], deletes: list[str]) -> None:
        """Apply a batch atomically by swapping in a modified copy."""
        if not self._opened:
            raise BackendWriteError("committing to memory", "backend is not open")
        with self._lock:
            if self.fail_commits > 0:
                self.fail_commits -= 1
                raise BackendWriteError("committing to memory", "simulated failure")
            staged = deepcopy(self._rows)
            for record in upserts:
                staged[record.key] = {"key": record.key, **record.to_dict()}
            for key in deletes:
                staged.pop(key, None)
            self._rows = staged
            self.commit_count += 1

    def fail_next_commits(self, count: int = 1) -> None:
        """Make the next ``count`` commits raise BackendWriteError."""
        self.fail_commits = count

    def write_external(self, row: dict[str, Any] | None = None, delete: str | None = None) -> None:
        """Change the stored rows as if another process had committed."""
        if row is not None:
            self._rows[row["key"]] = deepcopy(row)
        if delete is not None:
            self._rows.pop(delete, None)
        self._external_writes += 1

    def change_token(self) -> int | None:
        return self._external_writes

    def keys(self) -> list[str]:
        """Get all stored keys."""
        return sorted(self._rows)

    def close(self) -> None:
        """Close backend (no-op for memory)."""
        self._opened = False
