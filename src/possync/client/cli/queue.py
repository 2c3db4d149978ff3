"""Queue maintenance commands for the possync CLI.

Commands:
- clear-queue: Delete queue entries
- reset-failed: Give failed entries a fresh retry budget
- resolve-conflict: Settle a conflict recorded under the manual strategy
- enqueue: Record a local change by hand (local database only)
"""

from __future__ import annotations

import json

import click

from possync.client.cli.context import CliContext, pass_context, unwrap
from possync.core.types import ChangeType, ConflictResolution, SyncStatus


@click.command("clear-queue")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in SyncStatus]),
    help="Only delete entries with this status.",
)
@click.confirmation_option(prompt="Delete the selected queue entries?")
@pass_context
def clear_queue(ctx: CliContext, status_filter: str | None) -> None:
    """Delete sync queue entries."""
    unwrap(ctx.client().clear_queue(status_filter))
    click.echo(f"Cleared {status_filter or 'all'} queue entries.")


@click.command("reset-failed")
@click.option("--id", "item_ids", type=int, multiple=True, help="Only reset this entry.")
@pass_context
def reset_failed(ctx: CliContext, item_ids: tuple[int, ...]) -> None:
    """Put failed entries back to pending with a fresh retry budget."""
    data = unwrap(ctx.client().reset_failed(list(item_ids) or None))
    click.echo(f"Reset {data['reset']} failed items.")


@click.command("resolve-conflict")
@click.argument("conflict_id", type=int)
@click.option(
    "--keep",
    type=click.Choice([r.value for r in ConflictResolution]),
    required=True,
    help="Version to keep.",
)
@pass_context
def resolve_conflict(ctx: CliContext, conflict_id: int, keep: str) -> None:
    """Settle conflict CONFLICT_ID by keeping the local or the remote version."""
    data = unwrap(ctx.client().resolve_conflict(conflict_id, keep))
    click.echo(
        f"Resolved conflict #{data['id']} on {data['table_name']}:{data['record_id']} "
        f"(kept {keep} version)."
    )


@click.command()
@click.argument("table_name")
@click.argument("record_id")
@click.option(
    "--type",
    "change_type",
    type=click.Choice([c.value for c in ChangeType]),
    default=ChangeType.UPDATE.value,
    show_default=True,
    help="Kind of change.",
)
@click.option("--data", "payload", help="Record snapshot as a JSON object.")
@pass_context
def enqueue(
    ctx: CliContext,
    table_name: str,
    record_id: str,
    change_type: str,
    payload: str | None,
) -> None:
    """Record a change of TABLE_NAME:RECORD_ID for the next push."""
    data = None
    if payload:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--data") from e
        if not isinstance(data, dict):
            raise click.BadParameter("Must be a JSON object", param_hint="--data")

    try:
        entry = ctx.store().enqueue(table_name, record_id, change_type, data)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Queued #{entry.id}: {change_type} {table_name}:{record_id}")
