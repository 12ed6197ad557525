"""CLI output utilities.

Stored values and keys are user data, so they are printed with rich markup
and highlighting disabled.
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.table import Table
from rich.text import Text

from kvstore.core.models import Record, utcnow


def create_console(no_color: bool = False, width: int | None = None) -> Console:
    """Create Rich console with appropriate settings."""
    return Console(
        no_color=no_color,
        width=width or 120,
        highlight=not no_color,
        color_system=None if no_color else "auto",
    )


def print_plain(console: Console, text: str) -> None:
    """Print user data verbatim."""
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def print_lines(console: Console, lines: Iterable[str], empty_message: str) -> None:
    """Print each line, or ``empty_message`` when there are none."""
    printed = False
    for line in lines:
        print_plain(console, line)
        printed = True
    if not printed:
        print_plain(console, empty_message)


def print_records(console: Console, records: list[Record]) -> None:
    print_lines(console, (r.summary() for r in records), "No entries stored.")


def print_recent(console: Console, keys: list[str]) -> None:
    print_lines(
        console,
        (f"{index:>2}. {key}" for index, key in enumerate(keys, start=1)),
        "No recent keys recorded.",
    )


def print_error(console: Console, message: str) -> None:
    """Print an error message to stderr."""
    error_console = Console(stderr=True, no_color=console.no_color)
    error_console.print("[red]Error:[/red] ", end="")
    error_console.print(message, markup=False, highlight=False, soft_wrap=True)


def records_table(records: list[Record], title: str | None = None) -> Table:
    """Table with one row per record and its remaining TTL."""
    table = Table(title=title) if title else Table()
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_column("Tags", style="green")
    table.add_column("TTL", justify="right")

    now = utcnow()
    for record in records:
        remaining = record.ttl_remaining_minutes(now)
        table.add_row(
            Text(record.key),
            Text(record.value),
            Text(", ".join(record.tags)),
            "-" if remaining is None else f"{remaining}m",
        )
    return table
