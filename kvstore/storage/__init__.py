"""Storage layer: backends, the cache engine and mutation coordination."""

from .backends import BaseBackend, MemoryBackend, SQLiteBackend
from .cache import CacheEngine, PutResult
from .coordinator import (
    Applied,
    Evict,
    MutationCoordinator,
    PollResult,
    Put,
    ReadWriteLock,
    Remove,
)
from .namespace import NamespaceStore, resolve_namespace
from .sweeper import ExpirySweeper
from .transfer import ImportResult, TransferError, export_snapshot, import_file

__all__ = [
    "Applied",
    "BaseBackend",
    "CacheEngine",
    "Evict",
    "ExpirySweeper",
    "ImportResult",
    "MemoryBackend",
    "MutationCoordinator",
    "NamespaceStore",
    "PollResult",
    "Put",
    "PutResult",
    "ReadWriteLock",
    "Remove",
    "SQLiteBackend",
    "TransferError",
    "export_snapshot",
    "import_file",
    "resolve_namespace",
]
