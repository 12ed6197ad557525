"""Snapshot export and import.

Documents map each key to ``{value, tags, created_at, updated_at,
expires_at}``. Paths ending in ``.yaml``/``.yml`` are read and written as
YAML, everything else as JSON.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import msgspec
import yaml

from kvstore.core.exceptions import KvStoreError, ValidationError
from kvstore.core.models import Record
from kvstore.core.validators import validate_key, validate_record

from .cache import CacheEngine

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


class TransferError(KvStoreError):
    """Raised when an import document cannot be read or parsed."""

    def __init__(self, path: Path, details: str):
        self.path = path
        super().__init__(f"cannot import {path}: {details}")


@dataclass
class ImportResult:
    """Outcome of an import."""

    imported: int = 0
    errors: list[str] = field(default_factory=list)


def is_yaml(path: Path) -> bool:
    return Path(path).suffix.lower() in YAML_SUFFIXES


def snapshot_document(records: list[Record]) -> dict[str, dict[str, Any]]:
    return {record.key: record.to_dict() for record in records}


def render_document(records: list[Record], yaml_format: bool = False) -> str:
    """Serialize records as a pretty-printed document with sorted keys."""
    document = snapshot_document(records)
    if yaml_format:
        return yaml.safe_dump(
            document, default_flow_style=False, sort_keys=True, allow_unicode=True
        )
    return json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def export_snapshot(cache: CacheEngine, path: Path) -> int:
    """Write every live record to ``path``; returns the record count."""
    path = Path(path)
    snapshot = cache.snapshot()
    records = snapshot.ordered()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_document(records, is_yaml(path)), encoding="utf-8")
    logger.info(
        "exported %d records (version %d) to %s", len(records), snapshot.version, path
    )
    return len(records)


def parse_document(path: Path) -> dict[str, Any]:
    """Read an import document; an empty file is an empty document."""
    path = Path(path)
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TransferError(path, str(e)) from e
    if not contents.strip():
        logger.warning("import file %s is empty", path)
        return {}
    try:
        data = yaml.safe_load(contents) if is_yaml(path) else json.loads(contents)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise TransferError(path, f"invalid document: {e}") from e
    if not isinstance(data, dict):
        raise TransferError(path, "expected a mapping of key to record")
    return data


def build_records(document: dict[str, Any]) -> tuple[list[Record], list[str]]:
    """Convert a parsed document into records, collecting per-entry errors."""
    records = []
    errors = []
    for key, item in document.items():
        try:
            validate_key(str(key))
            if not isinstance(item, dict):
                raise ValidationError("value", "entry must be a mapping")
            if "value" not in item:
                raise ValidationError("value", "missing 'value' field")
            if isinstance(item.get("tags"), str):
                raise ValidationError("tags", "tags must be a list")
            record = validate_record(Record.from_dict(str(key), item))
        except (ValidationError, msgspec.ValidationError, TypeError) as e:
            errors.append(f"Entry {key}: {e}")
            continue
        records.append(record)
    return records, errors


def import_file(cache: CacheEngine, path: Path, replace: bool = False) -> ImportResult:
    """Upsert every valid entry of ``path`` into the store.

    Invalid entries are reported in the result and skipped.
    """
    records, errors = build_records(parse_document(path))
    for error in errors:
        logger.warning("skipping import entry: %s", error)
    imported = cache.import_records(records, replace=replace)
    logger.info("imported %d records from %s", imported, path)
    return ImportResult(imported=imported, errors=errors)
