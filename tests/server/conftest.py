"""Fixtures for server tests."""

import pytest
from fastapi.testclient import TestClient

from kvstore.server.app import create_app
from kvstore.storage.backends import MemoryBackend
from kvstore.storage.namespace import NamespaceStore


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend, tmp_path):
    with NamespaceStore(
        "web", backend=backend, recent_file=tmp_path / "recent.log"
    ) as opened:
        yield opened


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as test_client:
        yield test_client
