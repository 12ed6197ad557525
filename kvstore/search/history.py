"""Recent-access history.

Keeps a bounded, deduplicated most-recent-first list of keys and persists
every access as one line of an append-only log, with the key JSON-encoded.
The log is compacted when it grows too large or when keys are dropped from it.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path

from kvstore.core.models import RecentEntry, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 25
COMPACTION_FACTOR = 4


def parse_line(line: str) -> RecentEntry | None:
    """Parse a ``<timestamp>\\t<json key>`` log line; None if malformed."""
    line = line.rstrip("\r\n")
    timestamp, sep, raw_key = line.partition("\t")
    if not sep:
        return None
    try:
        accessed_at = datetime.fromisoformat(timestamp)
        key = json.loads(raw_key)
    except ValueError:
        return None
    if not isinstance(key, str) or not key.strip():
        return None
    return RecentEntry(key=key, accessed_at=accessed_at)


def format_line(entry: RecentEntry) -> str:
    key = json.dumps(entry.key, ensure_ascii=False)
    return f"{entry.accessed_at.isoformat()}\t{key}\n"


class RecentHistory:
    """Bounded most-recently-used key list backed by an append-only log.

    Log I/O problems are logged as warnings and never propagate; the
    in-memory list stays authoritative for the running process.
    """

    def __init__(self, log_file: Path | None = None, limit: int = DEFAULT_HISTORY_LIMIT):
        """Initialize and replay the log.

        Args:
            log_file: Append-only log location (None keeps history in memory)
            limit: Maximum number of keys retained; 0 disables tracking
        """
        self.log_file = Path(log_file) if log_file is not None else None
        self.limit = max(limit, 0)
        self._lock = threading.Lock()
        self._entries: list[RecentEntry] = []
        self._log_lines = 0
        self._load()

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def _load(self) -> None:
        if self.log_file is None or not self.enabled:
            return
        try:
            with open(self.log_file, encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning("failed to read recent history %s: %s", self.log_file, e)
            return

        skipped = 0
        for line in lines:
            entry = parse_line(line)
            if entry is None:
                skipped += 1
                continue
            self._touch(entry)
        self._log_lines = len(lines)
        if skipped:
            logger.warning(
                "skipped %d malformed lines in %s", skipped, self.log_file
            )
        logger.debug("loaded %d recent keys", len(self._entries))

    def _touch(self, entry: RecentEntry) -> None:
        self._entries = [e for e in self._entries if e.key != entry.key]
        self._entries.insert(0, entry)
        del self._entries[self.limit :]

    def record_access(self, key: str, now: datetime | None = None) -> None:
        """Move ``key`` to the front and append the access to the log."""
        if not self.enabled:
            return
        entry = RecentEntry(key=key, accessed_at=now or utcnow())
        with self._lock:
            self._touch(entry)
            if self.log_file is None:
                return
            if self._log_lines + 1 > self.limit * COMPACTION_FACTOR:
                self._compact()
            else:
                self._append(entry)

    def recent(self, limit: int | None = None) -> list[str]:
        """Keys most-recent-first, at most ``limit`` of them."""
        with self._lock:
            keys = [entry.key for entry in self._entries]
        if limit is None:
            return keys
        return keys[: max(limit, 0)]

    def entries(self) -> list[RecentEntry]:
        with self._lock:
            return list(self._entries)

    def forget(self, key: str) -> None:
        """Drop ``key`` from the history and rewrite the log."""
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.key != key]
            if len(self._entries) != before and self.log_file is not None:
                self._compact()

    def prune(self, live_keys: set[str] | frozenset[str]) -> None:
        """Drop keys that no longer exist in the store."""
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.key in live_keys]
            if len(self._entries) != before and self.log_file is not None:
                logger.info(
                    "pruned %d stale keys from recent history",
                    before - len(self._entries),
                )
                self._compact()

    def _append(self, entry: RecentEntry) -> None:
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(format_line(entry))
        except OSError as e:
            logger.warning("failed to append to %s: %s", self.log_file, e)
            return
        self._log_lines += 1

    def _compact(self) -> None:
        """Rewrite the log oldest-first with only the retained entries."""
        tmp = self.log_file.with_suffix(self.log_file.suffix + ".tmp")
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                for entry in reversed(self._entries):
                    f.write(format_line(entry))
            tmp.replace(self.log_file)
        except OSError as e:
            logger.warning("failed to compact %s: %s", self.log_file, e)
            return
        self._log_lines = len(self._entries)
        logger.debug("compacted recent history to %d lines", self._log_lines)
