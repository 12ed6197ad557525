"""Namespace-scoped store: one backend, cache, history and sweeper.

Path resolution:

- root directory: ``$KVSTORE_HOME`` or ``~/.kvstore``
- database: ``$KVSTORE_DATA_FILE`` or ``<root>/namespaces/<ns>/data.db``
- recent log: ``$KVSTORE_RECENT_FILE`` or
  ``<root>/namespaces/<ns>/logs/recent.log``
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from kvstore.core.models import Record
from kvstore.core.validators import validate_namespace
from kvstore.search.history import DEFAULT_HISTORY_LIMIT, RecentHistory

from .backends.base import BaseBackend
from .backends.sqlite import SQLiteBackend
from .cache import CacheEngine, PutResult
from .sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
APP_DIR = ".kvstore"
NAMESPACES_DIR = "namespaces"
DATA_FILE_NAME = "data.db"
RECENT_LOG_NAME = "recent.log"


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def storage_root() -> Path:
    """Directory holding every namespace."""
    explicit = _env("KVSTORE_HOME")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / APP_DIR


def resolve_namespace(raw: str | None = None) -> str:
    """Pick the namespace from ``raw``, ``$KVSTORE_NAMESPACE`` or the default."""
    namespace = (raw or "").strip() or _env("KVSTORE_NAMESPACE") or DEFAULT_NAMESPACE
    return validate_namespace(namespace)


def namespace_dir(namespace: str) -> Path:
    return storage_root() / NAMESPACES_DIR / namespace


def default_data_file(namespace: str) -> Path:
    explicit = _env("KVSTORE_DATA_FILE")
    if explicit:
        return Path(explicit).expanduser()
    return namespace_dir(namespace) / DATA_FILE_NAME


def default_recent_file(namespace: str) -> Path:
    explicit = _env("KVSTORE_RECENT_FILE")
    if explicit:
        return Path(explicit).expanduser()
    return namespace_dir(namespace) / "logs" / RECENT_LOG_NAME


class NamespaceStore:
    """Everything needed to serve one namespace.

    The store owns its backend; opening loads the cache, sweeps expired
    records and prunes the recent history against the live keys. Use it as a
    context manager so the backend and sweeper are always released.
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        backend: BaseBackend | None = None,
        data_file: Path | None = None,
        recent_file: Path | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        sweep_interval: float | None = None,
    ):
        """Initialize the store without touching the disk.

        Args:
            namespace: Validated namespace name
            backend: Backend to use instead of the namespace's SQLite file
            data_file: Database path override
            recent_file: Recent log override
            history_limit: Recent keys retained (0 disables history)
            sweep_interval: Seconds between background sweeps (None: no sweeper)
        """
        self.namespace = validate_namespace(namespace)
        self.data_file = Path(data_file) if data_file else default_data_file(namespace)
        self.backend = backend or SQLiteBackend(self.data_file)
        self.cache = CacheEngine(self.backend)
        self.history = RecentHistory(
            recent_file or default_recent_file(namespace), history_limit
        )
        self.sweeper = (
            ExpirySweeper(self.cache, sweep_interval)
            if sweep_interval is not None
            else None
        )
        self._open = False

    @classmethod
    def from_settings(
        cls,
        namespace: str | None = None,
        data_file: Path | None = None,
        recent_file: Path | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        sweep_interval: float | None = None,
    ) -> NamespaceStore:
        return cls(
            resolve_namespace(namespace),
            data_file=data_file,
            recent_file=recent_file,
            history_limit=history_limit,
            sweep_interval=sweep_interval,
        )

    def open(self) -> NamespaceStore:
        if self._open:
            return self
        logger.info("opening namespace %s at %s", self.namespace, self.backend.location)
        self.cache.load()
        self.cache.sweep()
        self.history.prune(set(self.cache.list()))
        if self.sweeper is not None:
            self.sweeper.start()
        self._open = True
        return self

    def close(self) -> None:
        if self.sweeper is not None:
            self.sweeper.stop()
        self.backend.close()
        self._open = False

    def __enter__(self) -> NamespaceStore:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, key: str) -> Record:
        record = self.cache.get(key)
        self.history.record_access(key)
        return record

    def put(
        self,
        key: str,
        value: str,
        tags: Iterable[str] | None = None,
        ttl_minutes: int | None = None,
    ) -> PutResult:
        result = self.cache.put(key, value, tags=tags, ttl_minutes=ttl_minutes)
        self.history.record_access(key)
        return result

    def remove(self, key: str) -> Record:
        record = self.cache.remove(key)
        self.history.forget(key)
        return record

    def recent(self, limit: int | None = None) -> list[str]:
        """Recent keys that are still live."""
        live = set(self.cache.list())
        keys = [key for key in self.history.recent() if key in live]
        if limit is None:
            return keys
        return keys[: max(limit, 0)]
