"""Record CLI commands: add, get, remove, list and recent."""

import click

from kvstore.cli.helpers import get_store, report_put
from kvstore.cli.output import print_plain, print_recent, print_records, records_table


@click.command()
@click.argument("key")
@click.argument("value")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--ttl", "ttl_minutes", type=int, help="Expire after this many minutes")
@click.pass_context
def add(
    ctx: click.Context,
    key: str,
    value: str,
    tags: tuple[str, ...],
    ttl_minutes: int | None,
) -> None:
    """Add or update a key. Shortcut: a"""
    store = get_store(ctx)
    result = store.put(key, value, tags=list(tags) or None, ttl_minutes=ttl_minutes)
    report_put(ctx.obj.console, key, result)


@click.command()
@click.argument("key")
@click.pass_context
def get(ctx: click.Context, key: str) -> None:
    """Print the value stored under KEY. Shortcut: g"""
    record = get_store(ctx).get(key)
    print_plain(ctx.obj.console, record.value)
    if record.tags:
        print_plain(ctx.obj.console, f"tags: {', '.join(record.tags)}")


@click.command()
@click.argument("key")
@click.pass_context
def remove(ctx: click.Context, key: str) -> None:
    """Remove KEY and its value. Shortcut: r, rm, delete"""
    record = get_store(ctx).remove(key)
    print_plain(
        ctx.obj.console, f"Removed '{key}'. Stored value was {record.describe()}."
    )


@click.command("list")
@click.option("--table", "as_table", is_flag=True, help="Show a table with TTLs")
@click.pass_context
def list_cmd(ctx: click.Context, as_table: bool) -> None:
    """List every stored record. Shortcut: l"""
    records = get_store(ctx).cache.records()
    if as_table and records:
        ctx.obj.console.print(records_table(records, title=ctx.obj.namespace))
        return
    print_records(ctx.obj.console, records)


@click.command()
@click.option("--limit", "-l", default=10, show_default=True, help="Maximum keys")
@click.pass_context
def recent(ctx: click.Context, limit: int) -> None:
    """Show recently accessed keys, newest first."""
    print_recent(ctx.obj.console, get_store(ctx).recent(limit))
