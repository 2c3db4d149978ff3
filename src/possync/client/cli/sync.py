"""Sync pass commands for the possync CLI.

Commands:
- sync: Push pending changes (and pull remote ones with --pull)
- pull: Pull remote changes
- test-connection: Check the cloud credentials
"""

from __future__ import annotations

import sys

import click

from possync.client.cli.context import CliContext, pass_context, unwrap


@click.command()
@click.option("--pull", "also_pull", is_flag=True, help="Pull remote changes after pushing.")
@pass_context
def sync(ctx: CliContext, also_pull: bool) -> None:
    """Push pending changes to the cloud."""
    client = ctx.client()
    envelope = client.sync_all()
    if envelope.data:
        data = envelope.data
        click.echo(
            f"Pushed {data['synced']} of {data['total']} items ({data['errors']} errors)."
        )
    if not envelope.success:
        click.echo(f"Error: {envelope.error}", err=True)
        sys.exit(1)

    if also_pull:
        _pull(ctx)


@click.command()
@pass_context
def pull(ctx: CliContext) -> None:
    """Pull remote changes into the local database."""
    _pull(ctx)


def _pull(ctx: CliContext) -> None:
    data = unwrap(ctx.client().pull_changes())
    click.echo(
        f"Pulled {data['total']} changes: {data['applied']} applied, "
        f"{data['conflicts']} conflicts, {data['skipped']} skipped."
    )


@click.command("test-connection")
@click.option("--url", "cloud_url", help="Cloud URL to test instead of the saved one.")
@click.option("--api-key", help="API key to test instead of the saved one.")
@click.option(
    "--provider",
    type=click.Choice(["supabase", "custom"]),
    help="Provider to test instead of the saved one.",
)
@pass_context
def test_connection(
    ctx: CliContext,
    cloud_url: str | None,
    api_key: str | None,
    provider: str | None,
) -> None:
    """Check that the cloud backend accepts the credentials."""
    override = {
        key: value
        for key, value in (
            ("cloud_url", cloud_url),
            ("api_key", api_key),
            ("cloud_provider", provider),
        )
        if value
    }
    data = unwrap(ctx.client().test_connection(**override))
    click.echo(data["message"])
