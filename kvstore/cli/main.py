"""Main CLI entry point and application setup."""

import logging
import sys
from pathlib import Path

import click
from click.exceptions import Exit

from kvstore import __version__
from kvstore.cli.commands import files, records, search, server, transfer
from kvstore.cli.config import LoggingSettings, load_settings
from kvstore.cli.helpers import Context
from kvstore.cli.output import create_console, print_error
from kvstore.storage.namespace import resolve_namespace

COMMAND_ALIASES = {
    "a": "add",
    "g": "get",
    "r": "remove",
    "rm": "remove",
    "delete": "remove",
    "l": "list",
    "s": "search",
    "f": "live",
    "interactive": "live",
    "e": "export",
    "i": "import",
}

LOG_FORMAT = "%(levelname)s: %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    debug: bool = False,
    settings: LoggingSettings | None = None,
) -> None:
    """Configure logging based on CLI flags and the config file."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        configured = settings.level_value() if settings else None
        level = configured if configured is not None else logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT if not debug else DEBUG_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if settings and settings.file:
        _add_file_handler(Path(settings.file).expanduser(), level)


def _add_file_handler(path: Path, level: int) -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(
            handler.baseFilename
        ) == path.resolve():
            return
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DEBUG_LOG_FORMAT))
    root.addHandler(handler)
    if root.level > level:
        root.setLevel(level)


class KvStoreGroup(click.Group):
    """Custom group that resolves short aliases and reports errors."""

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, COMMAND_ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        name, cmd, args = super().resolve_command(ctx, args)
        return (cmd.name if cmd else name), cmd, args

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeyboardInterrupt:
            click.echo("Interrupted", err=True)
            ctx.exit(130)
        except (click.ClickException, click.Abort, Exit, SystemExit):
            raise
        except Exception as e:
            debug = getattr(ctx.obj, "debug", False) if ctx.obj else False
            if debug or ctx.params.get("debug"):
                raise
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                print_error(console, str(e))
            else:
                click.echo(f"Error: {e}", err=True)
            ctx.exit(1)


@click.group(cls=KvStoreGroup)
@click.option("--namespace", "-n", help="Namespace to operate on")
@click.option(
    "--data-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Override the database file location",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.version_option(
    version=__version__, prog_name="kvstore", message="kvstore version %(version)s"
)
@click.pass_context
def cli(
    ctx: click.Context,
    namespace: str | None,
    data_file: Path | None,
    config: Path | None,
    verbose: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
) -> None:
    """Personal key-value note store.

    Records carry a value, tags and an optional expiry, and live in
    namespaces stored under ~/.kvstore.
    """
    console = create_console(no_color=no_color)
    settings = load_settings(config)
    setup_logging(verbose=verbose, quiet=quiet, debug=debug, settings=settings.logging)

    ctx.obj = Context(
        console=console,
        settings=settings,
        namespace=resolve_namespace(namespace),
        data_file=data_file,
        debug=debug,
    )


# Register commands
cli.add_command(records.add)
cli.add_command(records.get)
cli.add_command(records.remove)
cli.add_command(records.list_cmd, name="list")
cli.add_command(records.recent)
cli.add_command(search.search)
cli.add_command(search.live)
cli.add_command(transfer.export_command, name="export")
cli.add_command(transfer.import_command, name="import")
cli.add_command(transfer.html)
cli.add_command(server.serve)
cli.add_command(files.put_file, name="put-file")
cli.add_command(files.get_file, name="get-file")


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
