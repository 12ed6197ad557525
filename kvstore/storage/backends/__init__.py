"""Pluggable storage backends.

- **SQLiteBackend**: embedded database, one file per namespace
- **MemoryBackend**: in-memory storage for testing

Both implement the same read-all / all-or-nothing commit contract.
"""

from .base import BaseBackend
from .memory import MemoryBackend
from .sqlite import SQLiteBackend

__all__ = [
    "BaseBackend",
    "MemoryBackend",
    "SQLiteBackend",
]
