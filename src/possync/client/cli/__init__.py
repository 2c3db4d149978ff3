"""Command-line interface for possync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- status: Show the sync status summary
- health: Show the queue health
- sync: Push pending changes
- pull: Pull remote changes
- queue: List queue entries
- clear-queue: Delete queue entries
- reset-failed: Retry failed entries
- test-connection: Check the cloud credentials
- config show / config set: Read or change the sync configuration
- enable / disable: Switch sync on or off
- conflicts: List conflicts waiting for manual resolution
- resolve-conflict: Keep the local or the remote version of a conflict
- enqueue: Record a local change by hand
- serve: Run the local control server
"""

from __future__ import annotations

from pathlib import Path

import click

from possync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_db_path,
    get_server_url,
    load_config,
    save_config,
)
from possync.client.cli.context import CliContext
from possync.client.cli.queue import clear_queue, enqueue, reset_failed, resolve_conflict
from possync.client.cli.server import serve
from possync.client.cli.settings import config_group, disable, enable
from possync.client.cli.status import conflicts, health, queue, status
from possync.client.cli.sync import pull, sync, test_connection


@click.group()
@click.version_option(package_name="possync")
@click.option(
    "--url",
    help="Talk to a running control server (e.g. http://127.0.0.1:8765) "
    "instead of opening the database.",
)
@click.option("--remote", is_flag=True, help="Talk to the control server from the config file.")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="POS database (default from config).",
)
@click.pass_context
def cli(ctx: click.Context, url: str | None, remote: bool, db_path: Path | None) -> None:
    """possync - Cloud synchronization for the POS database."""
    if remote and not url:
        url = get_server_url()
    state = CliContext(url=url, db_path=db_path)
    ctx.obj = state
    ctx.call_on_close(state.close)


# Status commands
cli.add_command(status)
cli.add_command(health)
cli.add_command(queue)
cli.add_command(conflicts)

# Sync commands
cli.add_command(sync)
cli.add_command(pull)
cli.add_command(test_connection)

# Queue maintenance
cli.add_command(clear_queue)
cli.add_command(reset_failed)
cli.add_command(resolve_conflict)
cli.add_command(enqueue)

# Configuration
cli.add_command(config_group)
cli.add_command(enable)
cli.add_command(disable)

# Server
cli.add_command(serve)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_db_path",
    "load_config",
    "save_config",
]
