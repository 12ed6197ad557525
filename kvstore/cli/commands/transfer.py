"""Import, export and static HTML commands."""

from pathlib import Path

import click

from kvstore.cli.helpers import get_store
from kvstore.cli.output import print_plain
from kvstore.server.html import render_page
from kvstore.storage.transfer import export_snapshot, import_file


@click.command("export")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export_command(ctx: click.Context, path: Path) -> None:
    """Export all records as JSON (or YAML for .yaml/.yml). Shortcut: e"""
    count = export_snapshot(get_store(ctx).cache, path)
    print_plain(ctx.obj.console, f"Exported {count} entries to {path}")


@click.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--replace", is_flag=True, help="Remove records that are not in the file"
)
@click.pass_context
def import_command(ctx: click.Context, path: Path, replace: bool) -> None:
    """Import records from a JSON or YAML export. Shortcut: i"""
    result = import_file(get_store(ctx).cache, path, replace=replace)
    for error in result.errors:
        click.echo(f"Warning: {error}", err=True)
    print_plain(ctx.obj.console, f"Imported {result.imported} entries from {path}")


@click.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def html(ctx: click.Context, path: Path) -> None:
    """Write a static HTML view of the namespace."""
    store = get_store(ctx)
    snapshot = store.cache.snapshot()
    page = render_page(
        snapshot.ordered(), snapshot.version, title=f"kvstore: {store.namespace}"
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(page, encoding="utf-8")
    print_plain(
        ctx.obj.console,
        f"Generated HTML view at {path} "
        f"(namespace: {store.namespace}, data source: {store.backend.location})",
    )
