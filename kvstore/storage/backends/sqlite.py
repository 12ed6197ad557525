"""SQLite storage backend."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from kvstore.core.exceptions import BackendWriteError, LoadError
from kvstore.core.models import Record

from .base import BaseBackend

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2
BUSY_TIMEOUT_SECONDS = 3.0


class SQLiteBackend(BaseBackend):
    """SQLite-based record storage.

    The connection runs in autocommit mode; every ``commit`` call opens its
    own ``BEGIN IMMEDIATE`` transaction so concurrent processes serialize on
    the database write lock.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self.conn: sqlite3.Connection | None = None

    @property
    def location(self) -> str:
        return str(self.db_path)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the connection, ensuring it exists."""
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")
        return self.conn

    def open(self) -> None:
        """Open or create the database and check its schema."""
        if self.conn is not None:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(
                str(self.db_path),
                timeout=BUSY_TIMEOUT_SECONDS,
                check_same_thread=False,
                isolation_level=None,
            )
            self.connection.row_factory = sqlite3.Row
            self._initialize_schema()
        except (OSError, sqlite3.Error) as e:
            self.close()
            raise LoadError(self.location, str(e)) from e
        except LoadError:
            self.close()
            raise
        logger.info("database connection open: %s", self.db_path)

    def _initialize_schema(self) -> None:
        """Create the schema, refusing databases written by other versions."""
        self.connection.execute("PRAGMA journal_mode=WAL")
        self.connection.execute("PRAGMA synchronous=NORMAL")

        user_version = self.connection.execute("PRAGMA user_version").fetchone()[0]
        logger.debug("database user_version=%s", user_version)

        if user_version == SCHEMA_VERSION:
            return
        if user_version != 0:
            raise LoadError(
                self.location,
                f"unsupported database schema version {user_version}; "
                "delete the database file to recreate it",
            )

        legacy = self.connection.execute(
            "SELECT COUNT(1) FROM sqlite_master WHERE type = 'table' AND name = 'kv'"
        ).fetchone()[0]
        if legacy:
            raise LoadError(
                self.location,
                "unsupported legacy database detected; "
                "delete the database file to recreate it",
            )

        with self._transaction():
            self.connection.execute("""
                CREATE TABLE kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    tags TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    expires_at TEXT
                )
            """)
            self.connection.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        logger.info("initialized kv schema (user_version=%s)", SCHEMA_VERSION)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Immediate transaction context manager."""
        with self._lock:
            self.connection.execute("BEGIN IMMEDIATE")
            try:
                yield
                self.connection.execute("COMMIT")
            except BaseException:
                if self.connection.in_transaction:
                    self.connection.execute("ROLLBACK")
                raise

    def read_all(self) -> list[dict[str, Any]]:
        """Read every row in key order.

        A row whose tags column is not a JSON list is returned with the raw
        text so the caller can reject it.
        """
        with self._lock:
            cursor = self.connection.execute(
                "SELECT key, value, tags, created_at, updated_at, expires_at "
                "FROM kv ORDER BY key ASC"
            )
            rows = []
            for row in cursor:
                data = dict(row)
                raw_tags = data["tags"] or ""
                if raw_tags.strip():
                    try:
                        data["tags"] = json.loads(raw_tags)
                    except json.JSONDecodeError:
                        pass
                else:
                    data["tags"] = []
                rows.append(data)

        logger.info("loaded %d rows from sqlite", len(rows))
        return rows

    def commit(self, upserts: list[Record], deletes: list[str]) -> None:
        """Apply upserts and deletes in one transaction."""
        try:
            with self._transaction():
                for record in upserts:
                    self.connection.execute(
                        """
                        INSERT INTO kv (key, value, tags, created_at, updated_at, expires_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            tags = excluded.tags,
                            created_at = excluded.created_at,
                            updated_at = excluded.updated_at,
                            expires_at = excluded.expires_at
                    """,
                        (
                            record.key,
                            record.value,
                            json.dumps(list(record.tags)),
                            record.created_at.isoformat(),
                            record.updated_at.isoformat(),
                            record.expires_at.isoformat()
                            if record.expires_at
                            else None,
                        ),
                    )
                for key in deletes:
                    self.connection.execute("DELETE FROM kv WHERE key = ?", (key,))
        except (sqlite3.Error, RuntimeError) as e:
            raise BackendWriteError("committing to sqlite", str(e)) from e

        if upserts:
            logger.info("stored keys=%s", ",".join(r.key for r in upserts))
        if deletes:
            logger.info("deleted keys=%s", ",".join(deletes))

    def change_token(self) -> int | None:
        """SQLite's data_version, which moves when other connections commit."""
        with self._lock:
            return self.connection.execute("PRAGMA data_version").fetchone()[0]

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
