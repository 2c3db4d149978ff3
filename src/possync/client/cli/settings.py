"""Configuration commands for the possync CLI.

Commands:
- config show: Print the sync configuration
- config set: Change configuration fields
- enable / disable: Switch sync on or off
"""

from __future__ import annotations

import click

from possync.client.cli.context import CliContext, pass_context, unwrap
from possync.client.state import MASKED_API_KEY
from possync.core.types import CloudProvider, ConflictStrategy


def _echo_config(data: dict[str, object], show_key: bool = False) -> None:
    for key, value in data.items():
        if key == "api_key" and value and not show_key:
            value = MASKED_API_KEY
        click.echo(f"{key}: {'' if value is None else value}")


@click.group("config")
def config_group() -> None:
    """Show or change the sync configuration."""


@config_group.command("show")
@click.option("--show-key", is_flag=True, help="Print the API key in clear.")
@pass_context
def config_show(ctx: CliContext, show_key: bool) -> None:
    """Print the sync configuration."""
    _echo_config(unwrap(ctx.client().get_config()), show_key)


@config_group.command("set")
@click.option("--url", "cloud_url", help="Cloud backend URL.")
@click.option("--api-key", help="Cloud API key.")
@click.option(
    "--provider",
    "cloud_provider",
    type=click.Choice([p.value for p in CloudProvider]),
    help="Cloud backend flavour.",
)
@click.option("--table-prefix", help="Prefix of the remote table names.")
@click.option(
    "--interval",
    "sync_interval_minutes",
    type=click.IntRange(min=1),
    help="Minutes between automatic syncs.",
)
@click.option(
    "--strategy",
    "conflict_resolution_strategy",
    type=click.Choice([s.value for s in ConflictStrategy]),
    help="Conflict resolution strategy.",
)
@pass_context
def config_set(ctx: CliContext, **options: object) -> None:
    """Change configuration fields."""
    updates = {key: value for key, value in options.items() if value is not None}
    if not updates:
        raise click.UsageError("Nothing to change.")
    _echo_config(unwrap(ctx.client().update_config(**updates)))


@click.command()
@pass_context
def enable(ctx: CliContext) -> None:
    """Switch sync on."""
    data = unwrap(ctx.client().set_enabled(True))
    click.echo("Sync enabled.")
    if not data["cloud_url"] or not data["api_key"]:
        click.echo("Cloud URL and API key are not set yet: run 'possync config set'.")


@click.command()
@pass_context
def disable(ctx: CliContext) -> None:
    """Switch sync off."""
    unwrap(ctx.client().set_enabled(False))
    click.echo("Sync disabled.")
