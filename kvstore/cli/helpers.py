"""CLI helper functions shared by the command modules."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click
from rich.console import Console

from kvstore.cli.config import AppSettings
from kvstore.cli.output import print_plain
from kvstore.core.exceptions import ValidationError
from kvstore.core.models import SearchTarget
from kvstore.storage.cache import PutResult
from kvstore.storage.namespace import NamespaceStore


@dataclass
class Context:
    """CLI context that holds shared resources."""

    console: Console
    settings: AppSettings
    namespace: str
    data_file: Path | None = None
    debug: bool = False
    store: NamespaceStore | None = None


def get_store(ctx: click.Context, sweep: bool = False) -> NamespaceStore:
    """Open the namespace store once per invocation.

    The store is closed when the root click context closes.
    """
    obj: Context = ctx.obj
    if obj.store is None:
        history = obj.settings.history
        obj.store = NamespaceStore(
            obj.namespace,
            data_file=obj.data_file,
            recent_file=Path(history.file).expanduser() if history.file else None,
            history_limit=history.limit,
            sweep_interval=obj.settings.sweep.interval_seconds if sweep else None,
        ).open()
        ctx.find_root().call_on_close(obj.store.close)
    return obj.store


def resolve_target(tags_only: bool, keys_only: bool) -> SearchTarget:
    if tags_only and keys_only:
        raise ValidationError(
            "target", "Cannot search keys-only and tags-only at the same time."
        )
    if tags_only:
        return SearchTarget.TAGS
    if keys_only:
        return SearchTarget.KEYS
    return SearchTarget.BOTH


def report_put(console: Console, key: str, result: PutResult) -> None:
    if result.previous is not None:
        message = (
            f"Updated '{key}'. Previous: {result.previous.describe()}; "
            f"Now: {result.record.describe()}"
        )
    else:
        message = f"Added '{key}'. {result.record.describe()}"
    print_plain(console, message)
