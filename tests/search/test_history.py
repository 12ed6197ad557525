"""Tests for the recent-access history."""

from datetime import datetime, timedelta, timezone

import pytest

from kvstore.core.models import RecentEntry
from kvstore.search.history import (
    COMPACTION_FACTOR,
    RecentHistory,
    format_line,
    parse_line,
)


@pytest.fixture
def log_file(tmp_path):
    return tmp_path / "logs" / "recent.log"


def log_lines(path):
    return path.read_text().splitlines()


class TestLineFormat:
    def test_parse_line(self):
        entry = parse_line('2024-05-01T12:00:00+00:00\t"some key"\n')

        assert entry == RecentEntry(
            key="some key",
            accessed_at=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
        )

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "no tab here",
            'not-a-date\t"key"',
            '2024-05-01T12:00:00+00:00\t"  "',
            "2024-05-01T12:00:00+00:00\tunquoted",
            "2024-05-01T12:00:00+00:00\t42",
        ],
    )
    def test_malformed_lines(self, line):
        assert parse_line(line) is None

    def test_format_line(self, now):
        assert format_line(RecentEntry("k", now)) == '2024-05-01T12:00:00+00:00\t"k"\n'


class TestRecentHistory:
    def test_most_recent_first_and_deduplicated(self):
        history = RecentHistory(limit=3)
        for key in ["a", "b", "a", "c"]:
            history.record_access(key)

        assert history.recent() == ["c", "a", "b"]

    def test_limit_is_enforced(self):
        history = RecentHistory(limit=2)
        for key in "abc":
            history.record_access(key)

        assert history.recent() == ["c", "b"]
        assert history.recent(1) == ["c"]

    def test_disabled(self, log_file):
        history = RecentHistory(log_file, limit=0)
        history.record_access("a")

        assert not history.enabled
        assert history.recent() == []
        assert not log_file.exists()

    def test_accesses_are_appended(self, log_file, now):
        history = RecentHistory(log_file)
        history.record_access("a", now)
        history.record_access("b", now + timedelta(seconds=1))

        assert log_lines(log_file) == [
            '2024-05-01T12:00:00+00:00\t"a"',
            '2024-05-01T12:00:01+00:00\t"b"',
        ]

    def test_replays_log(self, log_file, now):
        first = RecentHistory(log_file, limit=3)
        for i, key in enumerate(["a", "b", "a", "c"]):
            first.record_access(key, now + timedelta(seconds=i))

        assert RecentHistory(log_file, limit=3).recent() == ["c", "a", "b"]

    def test_replays_keys_with_line_breaks(self, log_file, now):
        history = RecentHistory(log_file)
        history.record_access("a\nb", now)
        history.record_access("c\r\td", now + timedelta(seconds=1))

        assert len(log_lines(log_file)) == 2
        assert RecentHistory(log_file).recent() == ["c\r\td", "a\nb"]

    def test_replay_skips_malformed_lines(self, log_file, caplog):
        log_file.parent.mkdir(parents=True)
        log_file.write_text(
            '2024-05-01T12:00:00+00:00\t"a"\ngarbage\n2024-05-01T12:00:01+00:00\t"b"\n'
        )

        history = RecentHistory(log_file)

        assert history.recent() == ["b", "a"]
        assert "skipped 1 malformed lines" in caplog.text

    def test_compacts_when_log_grows(self, log_file, now):
        history = RecentHistory(log_file, limit=2)
        for i in range(2 * COMPACTION_FACTOR + 1):
            history.record_access(f"k{i % 3}", now + timedelta(seconds=i))

        lines = log_lines(log_file)
        assert len(lines) <= 2 * COMPACTION_FACTOR
        assert RecentHistory(log_file, limit=2).recent() == history.recent()

    def test_forget_rewrites_log(self, log_file, now):
        history = RecentHistory(log_file)
        history.record_access("a", now)
        history.record_access("b", now + timedelta(seconds=1))

        history.forget("a")

        assert history.recent() == ["b"]
        assert log_lines(log_file) == ['2024-05-01T12:00:01+00:00\t"b"']

    def test_forget_unknown_key_leaves_log(self, log_file, now):
        history = RecentHistory(log_file)
        history.record_access("a", now)
        history.record_access("a", now + timedelta(seconds=1))

        history.forget("missing")

        assert len(log_lines(log_file)) == 2

    def test_prune(self, log_file, now):
        history = RecentHistory(log_file)
        for i, key in enumerate("abc"):
            history.record_access(key, now + timedelta(seconds=i))

        history.prune({"a", "c"})

        assert history.recent() == ["c", "a"]
        assert [line.split("\t")[1] for line in log_lines(log_file)] == ['"a"', '"c"']

    def test_write_failures_are_logged(self, tmp_path, caplog):
        blocker = tmp_path / "file"
        blocker.write_text("")
        history = RecentHistory(blocker / "recent.log")

        history.record_access("a")

        assert history.recent() == ["a"]
        assert "failed to append" in caplog.text

    def test_in_memory_only(self):
        history = RecentHistory()
        history.record_access("a")

        assert [e.key for e in history.entries()] == ["a"]
