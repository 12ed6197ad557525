"""kvstore CLI.

Built with Click and Rich.
"""

from kvstore.cli.main import cli

__all__ = ["cli"]
