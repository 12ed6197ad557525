"""Shared fixtures for storage tests."""

import pytest

from kvstore.storage.backends import MemoryBackend, SQLiteBackend
from kvstore.storage.cache import CacheEngine


@pytest.fixture
def memory_backend():
    """Empty in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def sqlite_path(tmp_path):
    return tmp_path / "store" / "data.db"


@pytest.fixture
def sqlite_backend(sqlite_path):
    backend = SQLiteBackend(sqlite_path)
    yield backend
    backend.close()


@pytest.fixture
def cache(memory_backend):
    """Loaded cache engine over an empty memory backend."""
    return CacheEngine(memory_backend).load()
