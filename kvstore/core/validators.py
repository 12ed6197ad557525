"""Input validators.

Every validator raises ValidationError before any backend or cache state is
touched.
"""

from __future__ import annotations

import re
from pathlib import Path

from .exceptions import ValidationError
from .models import Record

_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_namespace(namespace: str) -> str:
    """Validate a namespace identifier.

    Args:
        namespace: Namespace to validate

    Returns:
        The namespace unchanged

    Raises:
        ValidationError: If the namespace is empty, '.', '..' or contains
            characters other than letters, digits, '_', '-' and '.'
    """
    if namespace in (".", ".."):
        raise ValidationError(
            "namespace",
            f"invalid namespace '{namespace}'; '.' and '..' are not allowed",
        )
    if not _NAMESPACE_PATTERN.match(namespace):
        raise ValidationError(
            "namespace",
            f"invalid namespace '{namespace}'; use letters, numbers, '_', '-', or '.'",
        )
    return namespace


def validate_key(key: str) -> str:
    """Validate a record key (any non-blank string)."""
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("key", "key cannot be empty")
    return key


def require_non_empty(value: str, field: str) -> str:
    """Return ``value`` stripped, rejecting blank input."""
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(field, f"field '{field}' cannot be empty")
    return trimmed


def require_positive_minutes(value: int, field: str = "ttl_minutes") -> int:
    """Reject TTLs that are not whole positive minutes."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(field, f"field '{field}' must be greater than 0")
    return value


def validate_record(record: Record) -> Record:
    """Check the structural invariants of a record about to be stored."""
    validate_key(record.key)
    if record.expires_at is not None and record.expires_at <= record.created_at:
        raise ValidationError(
            "expires_at",
            f"expiry of '{record.key}' must be later than its creation time",
        )
    return record


def validate_markdown_path(path: Path, any_file: bool, label: str) -> Path:
    """Guard the file workflow against non-markdown paths.

    Args:
        path: Source or destination path
        any_file: Skip the extension check
        label: Human readable role of the path for the error message
    """
    if any_file or path.suffix.lower() == ".md":
        return path
    raise ValidationError(
        "path", f"{label} must end with '.md' (or pass --any-file): {path}"
    )
