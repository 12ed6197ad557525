"""Markdown file commands."""

from pathlib import Path

import click

from kvstore.cli.helpers import get_store, report_put
from kvstore.cli.output import print_plain
from kvstore.core.validators import validate_markdown_path


@click.command("put-file")
@click.argument("key")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--any-file", is_flag=True, help="Allow files without a .md extension")
@click.pass_context
def put_file(
    ctx: click.Context, key: str, path: Path, tags: tuple[str, ...], any_file: bool
) -> None:
    """Store the contents of a markdown file under KEY."""
    validate_markdown_path(path, any_file, "source file")
    contents = path.read_text(encoding="utf-8")
    result = get_store(ctx).put(key, contents, tags=list(tags) or None)
    report_put(ctx.obj.console, key, result)


@click.command("get-file")
@click.argument("key")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--any-file", is_flag=True, help="Allow files without a .md extension")
@click.pass_context
def get_file(ctx: click.Context, key: str, path: Path, any_file: bool) -> None:
    """Write the value stored under KEY to a markdown file."""
    validate_markdown_path(path, any_file, "destination file")
    record = get_store(ctx).get(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(record.value, encoding="utf-8")
    print_plain(ctx.obj.console, f"Wrote '{key}' to {path}")
