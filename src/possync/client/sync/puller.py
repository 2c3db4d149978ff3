"""Pull of remote changes into the local database.

The puller fetches every remote change recorded after the watermark
(`last_sync_at`), applies them oldest first and moves the watermark only once
the whole batch went through. A failure halfway leaves the watermark where it
was, so the next pull fetches the same batch again instead of skipping part
of it.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Any

from possync.client.records import RecordStoreError
from possync.client.sync.types import PullResult
from possync.core.timestamps import parse_iso, to_iso
from possync.core.types import SYNCABLE_TABLES, ChangeType, ConflictStrategy

if TYPE_CHECKING:
    from possync.client.api import CloudClient, RemoteChange
    from possync.client.records import RecordStore
    from possync.client.state import QueueEntry, QueueStore, SyncConfig

logger = logging.getLogger(__name__)

APPLIED = "applied"
CONFLICT = "conflict"
SKIPPED = "skipped"


def _parse_or_none(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return parse_iso(value)
    except ValueError:
        return None


def _change_time(change: RemoteChange) -> datetime | None:
    return _parse_or_none(change.server_updated_at)


class Puller:
    """Applies remote changes to local records."""

    def __init__(
        self,
        store: QueueStore,
        client: CloudClient,
        records: RecordStore,
    ) -> None:
        self._store = store
        self._client = client
        self._records = records

    def pull(
        self,
        config: SyncConfig,
        cancel_event: threading.Event | None = None,
    ) -> PullResult:
        """Fetch and apply remote changes.

        Args:
            config: Configuration snapshot taken at the start of the pass.
            cancel_event: Set by another thread to stop the pass.

        Returns:
            Counts of the batch and the new watermark (None if it did not move).

        Raises:
            APIError: If the remote changes cannot be listed.
        """
        cancel = cancel_event or threading.Event()
        since = config.last_sync_at

        changes = self._client.get_changes(since)
        # Changes without a timestamp go last
        changes.sort(key=lambda c: (_change_time(c) is None, _change_time(c) or datetime.min))
        result = PullResult(total=len(changes))
        logger.info("Pulled %d remote changes since %s", len(changes), since or "the beginning")

        latest = _parse_or_none(since)
        for change in changes:
            if cancel.is_set():
                result.cancelled = True
                result.error = "Pull cancelled"
                logger.info("Pull cancelled, watermark left at %s", since)
                return result

            try:
                outcome = self._apply(change, config)
            except (RecordStoreError, ValueError) as e:
                result.error = (
                    f"Failed to apply {change.table_name}:{change.record_id}: {e}"
                )
                logger.error("%s (watermark left at %s)", result.error, since)
                return result

            if outcome == APPLIED:
                result.applied += 1
            elif outcome == CONFLICT:
                result.conflicts += 1
            else:
                result.skipped += 1
            if outcome != SKIPPED:
                result.settled.add((change.table_name, change.record_id))

            changed_at = _change_time(change)
            if changed_at is not None and (latest is None or changed_at > latest):
                latest = changed_at

        if changes and latest is not None:
            watermark = latest.isoformat()
        else:
            watermark = to_iso(self._store.now()) or ""
        self._store.set_last_sync_at(watermark)
        result.watermark = watermark

        logger.info(
            "Pull finished: %d applied, %d conflicts, %d skipped",
            result.applied,
            result.conflicts,
            result.skipped,
        )
        return result

    def _apply(self, change: RemoteChange, config: SyncConfig) -> str:
        """Apply one remote change under the configured conflict strategy."""
        if change.table_name not in SYNCABLE_TABLES:
            logger.warning("Ignoring remote change for table %s", change.table_name)
            return SKIPPED

        local = self._records.get_record(change.table_name, change.record_id)

        if self._has_conflict(change, local, config.last_sync_at):
            strategy = config.conflict_resolution_strategy
            if strategy == ConflictStrategy.MANUAL:
                self._store.record_conflict(
                    change.table_name,
                    change.record_id,
                    change.change_type,
                    local,
                    change.data,
                    change.server_updated_at,
                )
                logger.info(
                    "Conflict on %s:%s recorded for manual resolution",
                    change.table_name,
                    change.record_id,
                )
                return CONFLICT
            if strategy == ConflictStrategy.CLIENT_WINS:
                logger.debug(
                    "Conflict on %s:%s, keeping local version",
                    change.table_name,
                    change.record_id,
                )
                return SKIPPED

        deleted_at = change.data.get("deleted_at") or change.data.get("deletedAt")
        if change.change_type == ChangeType.DELETE or deleted_at:
            if local is None:
                return SKIPPED
            stamp = deleted_at or change.server_updated_at or to_iso(self._store.now())
            self._records.soft_delete_record(change.table_name, change.record_id, str(stamp))
            return APPLIED

        self._records.upsert_record(change.table_name, change.record_id, change.data)
        return APPLIED

    def _has_conflict(
        self,
        change: RemoteChange,
        local: dict[str, Any] | None,
        last_sync_at: str | None,
    ) -> bool:
        """A local record conflicts when it changed since this device last saw it.

        It changed when unpushed queue entries exist for it, or when its
        updated_at is newer than both its last successful push and the
        watermark. Without a watermark nothing was ever pulled, so a local
        version that differs from the remote one conflicts.
        """
        if local is None:
            return False
        if self._store.has_local_changes(change.table_name, change.record_id):
            return True
        local_updated = _parse_or_none(local.get("updated_at"))
        if local_updated is None:
            return False

        pushed = self._store.last_pushed_entry(change.table_name, change.record_id)
        if pushed is not None and not _changed_since_push(local_updated, pushed):
            return False

        watermark = _parse_or_none(last_sync_at)
        if watermark is None:
            remote_updated = _parse_or_none(
                change.data.get("updated_at") or change.data.get("updatedAt")
            )
            return remote_updated != local_updated
        return local_updated > watermark


def _changed_since_push(local_updated: datetime, pushed: QueueEntry) -> bool:
    """Whether a local version is newer than what was last pushed of it."""
    snapshot = pushed.data or {}
    pushed_version = _parse_or_none(snapshot.get("updated_at") or snapshot.get("updatedAt"))
    if pushed_version is not None and local_updated <= pushed_version:
        return False
    if pushed.synced_at is not None and local_updated.timestamp() <= pushed.synced_at:
        return False
    return True
