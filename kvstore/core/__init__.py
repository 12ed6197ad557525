"""Core record model, validation and error taxonomy."""

from .exceptions import (
    BackendWriteError,
    KvStoreError,
    LoadError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)
from .models import (
    RecentEntry,
    Record,
    SearchTarget,
    Snapshot,
    normalize_tags,
    utcnow,
)
from .validators import (
    require_non_empty,
    require_positive_minutes,
    validate_key,
    validate_markdown_path,
    validate_namespace,
    validate_record,
)

__all__ = [
    # Errors
    "KvStoreError",
    "NotFoundError",
    "ValidationError",
    "BackendWriteError",
    "LoadError",
    "PayloadTooLargeError",
    # Models
    "Record",
    "Snapshot",
    "RecentEntry",
    "SearchTarget",
    "normalize_tags",
    "utcnow",
    # Validators
    "validate_namespace",
    "validate_key",
    "validate_record",
    "validate_markdown_path",
    "require_non_empty",
    "require_positive_minutes",
]
