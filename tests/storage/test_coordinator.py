"""Tests for mutation coordination, versioning and the read/write lock."""

import threading
import time
from datetime import timedelta

import pytest

from kvstore.core.exceptions import BackendWriteError, NotFoundError, ValidationError
from kvstore.core.models import Record, utcnow
from kvstore.storage.backends import MemoryBackend
from kvstore.storage.coordinator import (
    CacheState,
    Evict,
    MutationCoordinator,
    Put,
    ReadWriteLock,
    Remove,
)


@pytest.fixture
def backend():
    backend = MemoryBackend()
    backend.open()
    return backend


@pytest.fixture
def coordinator(backend):
    return MutationCoordinator(backend)


class TestCacheState:
    def test_sorted_key_index(self, now):
        state = CacheState()
        for key in ["m", "a", "z", "b"]:
            state.upsert(Record.create(key, "v", now=now))

        assert state.keys == ["a", "b", "m", "z"]

        state.discard("b")
        state.discard("missing")
        assert state.keys == ["a", "m", "z"]
        assert [r.key for r in state.ordered()] == ["a", "m", "z"]

    def test_upsert_existing_key_keeps_index(self, now):
        state = CacheState()
        state.upsert(Record.create("a", "1", now=now))
        state.upsert(Record.create("a", "2", now=now))

        assert state.keys == ["a"]
        assert state.records["a"].value == "2"


class TestApply:
    def test_put_bumps_version_and_writes_backend(self, coordinator, backend, now):
        applied = coordinator.apply(Put(Record.create("k", "v", now=now)))

        assert applied.version == 1
        assert applied.previous is None
        assert coordinator.version == 1
        assert backend.keys() == ["k"]
        assert coordinator.get("k").value == "v"

    def test_put_reports_previous(self, coordinator, now):
        first = Record.create("k", "1", now=now)
        coordinator.apply(Put(first))

        applied = coordinator.apply(Put(first.updated(value="2", now=now)))

        assert applied.previous == first
        assert applied.version == 2

    def test_remove(self, coordinator, backend, now):
        coordinator.apply(Put(Record.create("k", "v", now=now)))

        applied = coordinator.apply(Remove("k"))

        assert applied.current is None
        assert coordinator.get("k") is None
        assert backend.keys() == []
        assert coordinator.version == 2

    def test_remove_missing_key(self, coordinator, backend):
        with pytest.raises(NotFoundError):
            coordinator.apply(Remove("missing"))

        assert coordinator.version == 0
        assert backend.commit_count == 0

    def test_put_rejects_invalid_record(self, coordinator, backend, now):
        record = Record.create("k", "v", now=now)
        invalid = Record(
            key="k",
            value="v",
            created_at=now,
            updated_at=now,
            expires_at=now - timedelta(seconds=1),
        )

        with pytest.raises(ValidationError):
            coordinator.apply(Put(invalid))

        assert backend.commit_count == 0
        coordinator.apply(Put(record))
        assert coordinator.version == 1

    def test_backend_failure_leaves_cache_untouched(self, coordinator, backend, now):
        coordinator.apply(Put(Record.create("k", "v", now=now)))
        backend.fail_next_commits(1)

        with pytest.raises(BackendWriteError):
            coordinator.apply(Put(Record.create("k", "changed", now=now)))

        assert coordinator.get("k").value == "v"
        assert coordinator.version == 1

    def test_section_released_after_failure(self, coordinator, backend, now):
        backend.fail_next_commits(1)
        with pytest.raises(BackendWriteError):
            coordinator.apply(Put(Record.create("a", "v", now=now)))

        coordinator.apply(Put(Record.create("b", "v", now=now)))

        assert coordinator.version == 1


class TestEvict:
    def test_evicts_expired_record(self, coordinator, backend, now):
        record = Record.create("k", "v", ttl_minutes=1, now=now)
        coordinator.apply(Put(record), now=now)

        applied = coordinator.apply(
            Evict("k", record.expires_at), now=now + timedelta(minutes=2)
        )

        assert applied is not None
        assert coordinator.get("k") is None
        assert backend.keys() == []
        assert coordinator.version == 2

    def test_skips_unexpired_record(self, coordinator, now):
        record = Record.create("k", "v", ttl_minutes=10, now=now)
        coordinator.apply(Put(record), now=now)

        assert coordinator.apply(Evict("k", record.expires_at), now=now) is None
        assert coordinator.version == 1

    def test_skips_record_rewritten_since(self, coordinator, backend, now):
        record = Record.create("k", "v", ttl_minutes=1, now=now)
        coordinator.apply(Put(record), now=now)
        replacement = Record.create("k", "new", now=now)
        coordinator.apply(Put(replacement), now=now)
        commits = backend.commit_count

        applied = coordinator.apply(
            Evict("k", record.expires_at), now=now + timedelta(hours=1)
        )

        assert applied is None
        assert coordinator.get("k") == replacement
        assert coordinator.version == 2
        assert backend.commit_count == commits

    def test_skips_missing_record(self, coordinator, now):
        assert coordinator.apply(Evict("gone", now)) is None
        assert coordinator.version == 0


class TestBatch:
    def test_batch_is_one_transaction(self, coordinator, backend, now):
        with coordinator.section() as section:
            applied = section.apply_batch(
                [Put(Record.create(k, "v", now=now)) for k in ["a", "b", "c"]]
            )

        assert [a.version for a in applied] == [1, 2, 3]
        assert backend.commit_count == 1
        assert coordinator.version == 3

    def test_failed_batch_changes_nothing(self, coordinator, backend, now):
        coordinator.apply(Put(Record.create("a", "v", now=now)))
        backend.fail_next_commits(1)

        with pytest.raises(BackendWriteError):
            with coordinator.section() as section:
                section.apply_batch(
                    [Put(Record.create("b", "v", now=now)), Remove("a")]
                )

        assert [r.key for r in coordinator.ordered()] == ["a"]
        assert coordinator.version == 1

    def test_empty_batch(self, coordinator, backend):
        with coordinator.section() as section:
            assert section.apply_batch([]) == []
        assert backend.commit_count == 0

    def test_reset_bumps_version_only_on_change(self, coordinator, now):
        record = Record.create("a", "v", now=now)
        coordinator.install([record])

        with coordinator.section() as section:
            assert section.reset([record]) is False
        assert coordinator.version == 0

        with coordinator.section() as section:
            assert section.reset([record, Record.create("b", "v", now=now)]) is True
        assert coordinator.version == 1
        assert [r.key for r in coordinator.ordered()] == ["a", "b"]


class TestSnapshotAndPoll:
    def test_install_keeps_version_zero(self, coordinator, now):
        coordinator.install([Record.create("a", "v", now=now)])

        snapshot = coordinator.snapshot()
        assert snapshot.version == 0
        assert list(snapshot.records) == ["a"]

    def test_snapshot_is_detached_from_later_writes(self, coordinator, now):
        coordinator.apply(Put(Record.create("a", "v", now=now)))
        snapshot = coordinator.snapshot()

        coordinator.apply(Put(Record.create("b", "v", now=now)))

        assert list(snapshot.records) == ["a"]
        assert snapshot.version == 1

    def test_poll(self, coordinator, now):
        coordinator.apply(Put(Record.create("a", "v", now=now)))

        unchanged = coordinator.poll(1)
        assert unchanged.changed is False
        assert unchanged.records is None

        changed = coordinator.poll(0)
        assert changed.changed is True
        assert changed.version == 1
        assert [r.key for r in changed.records] == ["a"]

        assert coordinator.poll(None).changed is True

    def test_poll_leaves_out_expired_records(self, coordinator, now):
        coordinator.apply(Put(Record.create("a", "v", now=now)))
        coordinator.apply(Put(Record.create("b", "v", ttl_minutes=5, now=now)))

        result = coordinator.poll(None, now=now + timedelta(minutes=10))

        assert result.version == 2
        assert [r.key for r in result.records] == ["a"]


class TestConcurrency:
    def test_concurrent_puts_are_serialized(self, coordinator, backend):
        errors = []

        def writer(prefix):
            try:
                for i in range(25):
                    coordinator.apply(Put(Record.create(f"{prefix}-{i}", "v")))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert coordinator.version == 100
        assert len(coordinator.ordered()) == 100
        assert backend.keys() == sorted(r.key for r in coordinator.ordered())

    def test_readers_never_see_torn_state(self, coordinator):
        stop = threading.Event()
        torn = []

        def writer():
            for i in range(200):
                coordinator.apply(Put(Record.create(f"k{i:03d}", "v")))
            stop.set()

        def reader():
            while not stop.is_set():
                snapshot = coordinator.snapshot()
                if len(snapshot.records) != snapshot.version:
                    torn.append(snapshot.version)

        threads = [threading.Thread(target=writer)] + [
            threading.Thread(target=reader) for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert torn == []

    def test_failure_in_one_writer_does_not_affect_others(self, coordinator, backend):
        backend.fail_next_commits(1)
        results = []

        def writer(key):
            try:
                coordinator.apply(Put(Record.create(key, "v")))
                results.append((key, "ok"))
            except BackendWriteError:
                results.append((key, "failed"))

        threads = [threading.Thread(target=writer, args=(k,)) for k in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        failed = [k for k, outcome in results if outcome == "failed"]
        assert len(failed) == 1
        assert coordinator.version == 3
        assert failed[0] not in backend.keys()
        assert coordinator.get(failed[0]) is None


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = []
        barrier = threading.Barrier(3)

        def reader():
            with lock.read_locked():
                inside.append(1)
                barrier.wait(timeout=5)

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(inside) == 3

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []

        def reader():
            with lock.read_locked():
                events.append("read")

        with lock.write_locked():
            t = threading.Thread(target=reader)
            t.start()
            time.sleep(0.05)
            events.append("write-done")
        t.join()

        assert events == ["write-done", "read"]

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        events = []
        reading = threading.Event()
        release = threading.Event()

        def reader():
            with lock.read_locked():
                reading.set()
                release.wait(timeout=5)
                events.append("read-done")

        def writer():
            with lock.write_locked():
                events.append("write")

        r = threading.Thread(target=reader)
        r.start()
        reading.wait(timeout=5)
        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.05)
        release.set()
        r.join()
        w.join()

        assert events == ["read-done", "write"]


def test_utcnow_is_aware():
    assert utcnow().tzinfo is not None
