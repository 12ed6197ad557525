"""Tests for snapshot export and import."""

import json

import pytest
import yaml

from kvstore.core.exceptions import KvStoreError
from kvstore.storage.coordinator import Put
from kvstore.storage.transfer import (
    TransferError,
    build_records,
    export_snapshot,
    import_file,
    parse_document,
    render_document,
)


@pytest.fixture
def populated(cache):
    cache.put("beta", "2")
    cache.put("alpha", "1", ["Work", "home"], ttl_minutes=60)
    return cache


class TestExport:
    def test_json_document(self, populated, tmp_path):
        path = tmp_path / "out" / "snapshot.json"

        assert export_snapshot(populated, path) == 2

        text = path.read_text()
        assert text.endswith("}\n")
        assert text.index('"alpha"') < text.index('"beta"')
        document = json.loads(text)
        assert document["alpha"]["value"] == "1"
        assert document["alpha"]["tags"] == ["home", "work"]
        assert document["alpha"]["expires_at"] is not None
        assert document["beta"]["expires_at"] is None
        assert set(document["beta"]) == {
            "value",
            "tags",
            "created_at",
            "updated_at",
            "expires_at",
        }

    def test_json_is_indented(self, populated):
        text = render_document(populated.records())

        assert text.startswith('{\n  "alpha": {\n    "created_at"')

    def test_yaml_document(self, populated, tmp_path):
        path = tmp_path / "snapshot.yaml"

        export_snapshot(populated, path)

        document = yaml.safe_load(path.read_text())
        assert list(document) == ["alpha", "beta"]
        assert document["beta"]["value"] == "2"
        assert isinstance(document["beta"]["created_at"], str)

    def test_empty_store(self, cache, tmp_path):
        path = tmp_path / "empty.json"

        assert export_snapshot(cache, path) == 0
        assert path.read_text() == "{}\n"

    def test_expired_records_are_not_exported(self, cache, tmp_path, expired_record):
        cache.coordinator.apply(Put(expired_record("old")))
        path = tmp_path / "out.json"

        assert export_snapshot(cache, path) == 0


class TestParseDocument:
    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("  \n")

        assert parse_document(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(TransferError):
            parse_document(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(TransferError, match="invalid document"):
            parse_document(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(TransferError, match="expected a mapping"):
            parse_document(path)

    def test_transfer_error_is_store_error(self, tmp_path):
        assert isinstance(TransferError(tmp_path, "x"), KvStoreError)


class TestBuildRecords:
    def test_valid_entries(self):
        records, errors = build_records(
            {
                "k": {"value": "v", "tags": ["A"]},
                "other": {
                    "value": "x",
                    "created_at": "2024-01-01T00:00:00+00:00",
                    "updated_at": "2024-01-02T00:00:00+00:00",
                },
            }
        )

        assert errors == []
        assert [r.key for r in records] == ["k", "other"]
        assert records[0].tags == ("a",)
        assert records[1].created_at.year == 2024

    def test_invalid_entries_are_reported(self):
        records, errors = build_records(
            {
                "ok": {"value": "v"},
                "no-value": {"tags": []},
                "not-a-mapping": "plain",
                "bad-tags": {"value": "v", "tags": "a,b"},
                "bad-time": {"value": "v", "created_at": "soon"},
                "backwards": {
                    "value": "v",
                    "created_at": "2024-01-02T00:00:00+00:00",
                    "expires_at": "2024-01-01T00:00:00+00:00",
                },
            }
        )

        assert [r.key for r in records] == ["ok"]
        assert len(errors) == 5
        assert all(error.startswith("Entry ") for error in errors)
        assert errors[0] == "Entry no-value: missing 'value' field"


class TestImport:
    def test_import_upserts(self, cache, tmp_path):
        cache.put("keep", "old")
        cache.put("k", "before")
        path = tmp_path / "in.json"
        path.write_text(json.dumps({"k": {"value": "after"}, "new": {"value": "n"}}))

        result = import_file(cache, path)

        assert result.imported == 2
        assert result.errors == []
        assert cache.list() == ["k", "keep", "new"]
        assert cache.get("k").value == "after"

    def test_import_replace(self, cache, tmp_path):
        cache.put("drop", "old")
        path = tmp_path / "in.yaml"
        path.write_text("k:\n  value: v\n  tags: [x]\n")

        result = import_file(cache, path, replace=True)

        assert result.imported == 1
        assert cache.list() == ["k"]
        assert cache.get("k").tags == ("x",)

    def test_import_is_one_transaction(self, cache, memory_backend, tmp_path):
        path = tmp_path / "in.json"
        path.write_text(json.dumps({k: {"value": k} for k in "abc"}))

        import_file(cache, path)

        assert memory_backend.commit_count == 1
        assert cache.version == 3

    def test_import_skips_invalid_entries(self, cache, tmp_path, caplog):
        path = tmp_path / "in.json"
        path.write_text(json.dumps({"good": {"value": "v"}, "bad": {"tags": []}}))

        result = import_file(cache, path)

        assert result.imported == 1
        assert result.errors == ["Entry bad: missing 'value' field"]
        assert "skipping import entry" in caplog.text

    def test_export_then_import_restores_store(self, populated, tmp_path):
        path = tmp_path / "snap.json"
        export_snapshot(populated, path)
        original = {r.key: r for r in populated.records()}
        populated.remove("alpha")
        populated.remove("beta")

        import_file(populated, path)

        assert {r.key: r for r in populated.records()} == original
