"""Read-only commands for the possync CLI.

Commands:
- status: Show the sync status summary
- health: Show the queue health, warnings and alerts
- queue: List queue entries
- conflicts: List remote changes waiting for manual resolution
"""

from __future__ import annotations

import json

import click

from possync.client.cli.context import CliContext, pass_context, unwrap
from possync.core.types import SyncStatus


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@pass_context
def status(ctx: CliContext, as_json: bool) -> None:
    """Show the sync status summary."""
    data = unwrap(ctx.client().get_status())
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"Sync:        {'enabled' if data['enabled'] else 'disabled'}")
    click.echo(f"Configured:  {'yes' if data['isConfigured'] else 'no'}")
    click.echo(f"Provider:    {data['cloudProvider']}")
    click.echo(f"Device:      {data['deviceId']}")
    click.echo(f"Last sync:   {data['lastSyncAt'] or 'never'}")
    click.echo(f"Pending:     {data['pending']}")
    click.echo(f"Errors:      {data['errors']}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@pass_context
def health(ctx: CliContext, as_json: bool) -> None:
    """Show the queue health.

    Exits with status 2 when the health is critical.
    """
    data = unwrap(ctx.client().get_health())
    if as_json:
        click.echo(json.dumps(data, indent=2))
    else:
        metrics = data["metrics"]
        click.echo(f"Status:      {data['status'].upper()}")
        click.echo(
            f"Queue:       {metrics['total']} total, {metrics['pending']} pending, "
            f"{metrics['errors']} errors, {metrics['synced']} synced"
        )
        click.echo(f"Error rate:  {metrics['errorRate']}%")
        click.echo(f"Stuck:       {metrics['stuck']}")
        age = metrics["lastSyncAgeMinutes"]
        click.echo(f"Last sync:   {'never' if age is None else f'{age} minutes ago'}")
        if data["isLocked"]:
            click.echo("A sync is in progress.")
        for alert in data["alerts"]:
            click.echo(f"ALERT: {alert}")
        for warning in data["warnings"]:
            click.echo(f"Warning: {warning}")

    if data["status"] == "critical":
        raise SystemExit(2)


@click.command()
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in SyncStatus]),
    help="Only show entries with this status.",
)
@click.option("--limit", default=50, show_default=True, help="Maximum number of entries.")
@click.option("--offset", default=0, help="Number of entries to skip.")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@pass_context
def queue(
    ctx: CliContext,
    status_filter: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List sync queue entries, newest first."""
    entries = unwrap(ctx.client().get_queue(status=status_filter, limit=limit, offset=offset))
    if as_json:
        click.echo(json.dumps(entries, indent=2))
        return
    if not entries:
        click.echo("Queue is empty.")
        return
    for entry in entries:
        line = (
            f"#{entry['id']:<6} {entry['sync_status']:<8} {entry['change_type']:<7} "
            f"{entry['table_name']}:{entry['record_id']} (retries: {entry['retry_count']})"
        )
        click.echo(line)
        if entry["error_message"]:
            click.echo(f"         {entry['error_message']}")


@click.command()
@click.option("--all", "include_resolved", is_flag=True, help="Include resolved conflicts.")
@pass_context
def conflicts(ctx: CliContext, include_resolved: bool) -> None:
    """List conflicts recorded under the manual strategy."""
    records = unwrap(ctx.client().get_conflicts(include_resolved))
    if not records:
        click.echo("No conflicts.")
        return
    for record in records:
        state = "resolved" if record["resolved"] else "open"
        click.echo(
            f"#{record['id']:<6} {state:<8} {record['change_type']:<7} "
            f"{record['table_name']}:{record['record_id']} "
            f"(remote {record['server_updated_at'] or 'unknown'})"
        )
