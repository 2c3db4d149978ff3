"""Control server command for the possync CLI.

Commands:
- serve: Run the local control server with automatic sync
"""

from __future__ import annotations

from pathlib import Path

import click

from possync.client.cli.config import get_db_path, get_log_path, get_server_address


@click.command()
@click.option("--host", help="Interface to listen on (default from config, 127.0.0.1).")
@click.option("--port", type=int, help="Port to listen on (default from config, 8765).")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="POS database (default from config).",
)
@click.option("--no-auto-sync", is_flag=True, help="Do not run the periodic sync job.")
def serve(host: str | None, port: int | None, db_path: Path | None, no_auto_sync: bool) -> None:
    """Run the local control server.

    The server exposes the control API over HTTP and, unless disabled,
    pushes and pulls every sync interval.
    """
    import uvicorn

    from possync.server.app import build_service, create_app, setup_logging

    default_host, default_port = get_server_address()
    setup_logging(get_log_path())

    control_api, scheduler = build_service(db_path or get_db_path())
    app = create_app(control_api, None if no_auto_sync else scheduler)

    uvicorn.run(app, host=host or default_host, port=port or default_port)
