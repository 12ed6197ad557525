"""Search CLI commands."""

import click

from kvstore.cli.helpers import get_store, resolve_target
from kvstore.cli.live import LiveSearch
from kvstore.cli.output import print_lines


@click.command()
@click.argument("pattern")
@click.option("--limit", "-l", default=10, show_default=True, help="Maximum matches")
@click.option("--tags", "tags_only", is_flag=True, help="Search only within tags")
@click.option("--keys", "keys_only", is_flag=True, help="Search only within keys")
@click.pass_context
def search(
    ctx: click.Context, pattern: str, limit: int, tags_only: bool, keys_only: bool
) -> None:
    """Fuzzy search keys and tags. Shortcut: s"""
    target = resolve_target(tags_only, keys_only)
    matches = get_store(ctx).cache.search(pattern, target, limit)
    print_lines(
        ctx.obj.console, (m.record.summary() for m in matches), "No matches found."
    )


@click.command()
@click.option("--limit", "-l", default=10, show_default=True, help="Maximum matches")
@click.option("--tags", "tags_only", is_flag=True, help="Search only within tags")
@click.option("--keys", "keys_only", is_flag=True, help="Search only within keys")
@click.pass_context
def live(ctx: click.Context, limit: int, tags_only: bool, keys_only: bool) -> None:
    """Open live fuzzy search. Shortcut: f, interactive"""
    target = resolve_target(tags_only, keys_only)
    store = get_store(ctx)
    LiveSearch(store.cache, ctx.obj.console, target=target, limit=limit).run()
