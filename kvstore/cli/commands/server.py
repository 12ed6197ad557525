"""Web viewer command."""

import logging

import click

from kvstore.cli.helpers import get_store
from kvstore.cli.output import print_plain


@click.command()
@click.option("--host", help="Bind address")
@click.option("--port", "-p", type=int, help="Bind port")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve the live viewer and mutation API."""
    from kvstore.server.app import serve as run_server

    server_settings = ctx.obj.settings.server
    store = get_store(ctx, sweep=True)
    host = host or server_settings.host
    port = port or server_settings.port
    print_plain(
        ctx.obj.console,
        f"Serving namespace '{store.namespace}' at http://{host}:{port}",
    )
    log_level = logging.getLevelName(logging.getLogger().getEffectiveLevel())
    run_server(store, host=host, port=port, log_level=str(log_level).lower())
