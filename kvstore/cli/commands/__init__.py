"""CLI commands module."""

from . import files, records, search, server, transfer

__all__ = [
    "records",
    "search",
    "transfer",
    "files",
    "server",
]
