"""Interactive live fuzzy search."""

from __future__ import annotations

import logging
from collections.abc import Callable

import click
from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from kvstore.core.models import SearchTarget
from kvstore.storage.cache import CacheEngine

logger = logging.getLogger(__name__)

ESCAPE = "\x1b"
ENTER_KEYS = {"\r", "\n"}
EXIT_KEYS = {ESCAPE, "\x03", "\x04", *ENTER_KEYS}
BACKSPACE_KEYS = {"\x7f", "\x08"}
DELETE_KEY = "\x1b[3~"


class LiveSearch:
    """Re-run a fuzzy search after every keystroke.

    Esc, Enter, Ctrl-C and Ctrl-D exit. Backspace removes the last
    character and Delete clears the query.
    """

    def __init__(
        self,
        cache: CacheEngine,
        console: Console,
        target: SearchTarget = SearchTarget.BOTH,
        limit: int = 10,
        read_key: Callable[[], str] | None = None,
    ):
        self.cache = cache
        self.console = console
        self.target = target
        self.limit = limit
        self.read_key = read_key or click.getchar
        self.query = ""

    def handle_key(self, key: str) -> bool:
        """Apply one keystroke; returns True when the session should end."""
        if key in EXIT_KEYS:
            return True
        if key in BACKSPACE_KEYS:
            self.query = self.query[:-1]
        elif key == DELETE_KEY:
            self.query = ""
        elif key.startswith(ESCAPE) or not key.isprintable():
            logger.debug("ignoring key %r", key)
        else:
            self.query += key
        return False

    def lines(self) -> list[str]:
        lines = [f"Query: {self.query}"]
        if not self.query:
            lines.append("Type to search (Esc to exit).")
            return lines
        matches = self.cache.search(self.query, self.target, self.limit)
        if not matches:
            lines.append("No matches found.")
        else:
            lines.extend(match.record.summary() for match in matches)
        return lines

    def render(self) -> Group:
        return Group(*(Text(line) for line in self.lines()))

    def run(self) -> str:
        """Run until an exit key; returns the final query."""
        with Live(
            self.render(), console=self.console, auto_refresh=False, transient=True
        ) as live:
            while True:
                try:
                    key = self.read_key()
                except (KeyboardInterrupt, EOFError):
                    break
                if self.handle_key(key):
                    break
                live.update(self.render(), refresh=True)
        return self.query
