"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from kvstore.core.models import Record

KVSTORE_VARIABLES = (
    "KVSTORE_HOME",
    "KVSTORE_NAMESPACE",
    "KVSTORE_DATA_FILE",
    "KVSTORE_RECENT_FILE",
)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Point every store path and config lookup at the test's temp dir."""
    for name in KVSTORE_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("KVSTORE_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def now():
    """A fixed reference time."""
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_row():
    """Build a raw backend row."""

    def _make(key, value="v", tags=(), created_at=None, expires_at=None):
        created_at = created_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
        return {
            "key": key,
            "value": value,
            "tags": list(tags),
            "created_at": created_at.isoformat(),
            "updated_at": created_at.isoformat(),
            "expires_at": expires_at.isoformat() if expires_at else None,
        }

    return _make


@pytest.fixture
def expired_record():
    """Build a record whose expiry has already passed."""

    def _make(key, value="old", tags=()):
        created = datetime.now(timezone.utc) - timedelta(hours=2)
        return Record.create(key, value, tags, ttl_minutes=30, now=created)

    return _make
