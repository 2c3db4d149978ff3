"""Sync engine coordinating push and pull passes.

This module provides:
- SyncEngine: Owns the queue store, the pass lock and the cancel signal, and
  runs drain (push) and pull passes against a cloud client
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from possync.client.api import CloudUnreachableError, create_cloud_client
from possync.client.records import SQLiteRecordStore
from possync.client.sync.bootstrap import Bootstrapper
from possync.client.sync.drainer import Drainer
from possync.client.sync.health import HealthMonitor, HealthSnapshot
from possync.client.sync.item import ItemSyncer
from possync.client.sync.puller import Puller
from possync.client.sync.types import (
    DrainResult,
    PullResult,
    StateListener,
    SyncDisabledError,
    SyncError,
    SyncLockedError,
    SyncNotConfiguredError,
)
from possync.core.config import CloudConfig, HealthThresholds, SyncPolicy
from possync.core.timestamps import to_iso
from possync.core.types import ChangeType, CloudProvider, ConflictResolution, SyncState

if TYPE_CHECKING:
    from possync.client.api import CloudClient
    from possync.client.records import RecordStore
    from possync.client.state import ConflictRecord, QueueStore, SyncConfig

logger = logging.getLogger(__name__)

ClientFactory = Callable[[CloudConfig], "CloudClient"]

NOT_CONFIGURED_MESSAGE = (
    "Cloud API client not configured. Please set the cloud URL and API key in sync settings."
)


class SyncEngine:
    """Coordinates synchronization between the local queue and the cloud.

    Only one pass (push or pull) runs at a time, in this process and across
    processes sharing the database. A pass requested meanwhile fails at once
    with SyncLockedError.
    """

    def __init__(
        self,
        store: QueueStore,
        records: RecordStore | None = None,
        policy: SyncPolicy | None = None,
        thresholds: HealthThresholds | None = None,
        client_factory: ClientFactory = create_cloud_client,
    ) -> None:
        """Initialize the sync engine.

        Args:
            store: Queue store (also holds the configuration).
            records: Local records the puller writes to. Defaults to the
                tables of the store's own database.
            policy: Retry, rate limiting and locking policy.
            thresholds: Health classification thresholds.
            client_factory: Builds a cloud client from connection settings.
        """
        self._store = store
        self._records = records or SQLiteRecordStore(store.connection, store.lock)
        self._policy = policy or SyncPolicy()
        self._client_factory = client_factory
        self._health = HealthMonitor(store, self._policy, thresholds)

        self._pass_lock = threading.Lock()
        self._config_lock = threading.RLock()
        self._cancel_event = threading.Event()
        self._listeners: list[StateListener] = []
        self._state = SyncState.IDLE

    @property
    def store(self) -> QueueStore:
        return self._store

    @property
    def policy(self) -> SyncPolicy:
        return self._policy

    @property
    def state(self) -> SyncState:
        """Last state announced to listeners."""
        return self._state

    @property
    def is_locked(self) -> bool:
        """True while a pass runs here or in another process."""
        return self._pass_lock.locked() or self._store.is_lock_held()

    # === Listeners ===

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback for state changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_state(self, state: SyncState, **details: Any) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state, details)
            except Exception:
                logger.exception("Sync state listener failed")

    # === Configuration ===

    def get_config(self) -> SyncConfig:
        with self._config_lock:
            return self._store.get_config()

    def update_config(self, updates: dict[str, Any]) -> SyncConfig:
        """Update the configuration.

        Waits for a pass that is reading its configuration snapshot.

        Raises:
            ValueError: If no valid field is given or a value is invalid.
        """
        with self._config_lock:
            config = self._store.update_config(updates)
        logger.info("Sync configuration updated: %s", sorted(k for k in updates if k != "api_key"))
        return config

    def set_enabled(self, enabled: bool) -> SyncConfig:
        return self.update_config({"sync_enabled": enabled})

    # === Passes ===

    def cancel(self) -> None:
        """Ask the running pass to stop."""
        if self._pass_lock.locked():
            logger.info("Cancelling sync pass")
        self._cancel_event.set()

    @contextmanager
    def _exclusive_pass(self) -> Iterator[SyncConfig]:
        """Hold both locks for a pass and yield its configuration snapshot.

        Raises:
            SyncLockedError: If another pass is running.
        """
        if not self._pass_lock.acquire(blocking=False):
            raise SyncLockedError()
        try:
            if not self._store.acquire_lock(self._policy.lock_timeout):
                raise SyncLockedError()
            try:
                self._cancel_event.clear()
                with self._config_lock:
                    config = self._store.get_config()
                yield config
            finally:
                self._store.release_lock()
        finally:
            self._pass_lock.release()

    def _open_client(self, config: SyncConfig) -> CloudClient:
        if not config.is_configured:
            raise SyncNotConfiguredError(NOT_CONFIGURED_MESSAGE)
        return self._client_factory(config.to_cloud_config(timeout=self._policy.request_timeout))

    def sync_all(self) -> DrainResult:
        """Push every pending entry to the cloud.

        The first pass on a database without a watermark runs the initial
        sync before draining (see Bootstrapper). A pass that delivers at
        least one entry records its time as the last push.

        Returns:
            Counts of the pass. `aborted` is set when the cloud could not be
            reached; the untouched entries are still pending.

        Raises:
            SyncLockedError: If another pass is running.
            SyncDisabledError: If sync is switched off.
            SyncNotConfiguredError: If the cloud URL or API key is missing.
            SyncError: If the initial sync could not apply a remote change.
            APIError: If the initial sync cannot list the remote changes.
        """
        with self._exclusive_pass() as config:
            if not config.sync_enabled:
                raise SyncDisabledError("Sync is disabled")
            client = self._open_client(config)

            self._set_state(SyncState.SYNCING, operation="push")
            try:
                with client:
                    result = self._push(client, config)
            except CloudUnreachableError as e:
                self._set_state(SyncState.OFFLINE, operation="push", error=str(e))
                raise
            except Exception as e:
                self._set_state(SyncState.ERROR, operation="push", error=str(e))
                raise

            if result.synced:
                self._store.set_last_push_at(self._store.now())

            if result.aborted:
                self._set_state(SyncState.OFFLINE, operation="push", error=result.error)
            elif result.errors:
                self._set_state(SyncState.ERROR, operation="push", **result.to_dict())
            else:
                self._set_state(SyncState.IDLE, operation="push", **result.to_dict())
            return result

    def _push(self, client: CloudClient, config: SyncConfig) -> DrainResult:
        if Bootstrapper.is_needed(config):
            initial = Bootstrapper(self._store, self._records).run(
                client, config, self._cancel_event
            )
            if initial.cancelled:
                return DrainResult(cancelled=True, error="Sync cancelled")
            if initial.error:
                raise SyncError(f"Initial sync failed: {initial.error}")
        syncer = ItemSyncer(client, clock=self._store.now)
        return Drainer(self._store, syncer, self._policy).drain(self._cancel_event)

    def pull_changes(self) -> PullResult:
        """Apply remote changes recorded since the last pull.

        Raises:
            SyncLockedError: If another pass is running.
            SyncDisabledError: If sync is switched off.
            SyncNotConfiguredError: If the cloud URL or API key is missing.
            APIError: If the remote changes cannot be listed.
        """
        with self._exclusive_pass() as config:
            if not config.sync_enabled:
                raise SyncDisabledError("Sync is disabled")
            client = self._open_client(config)

            self._set_state(SyncState.SYNCING, operation="pull")
            try:
                with client:
                    result = Puller(self._store, client, self._records).pull(
                        config, self._cancel_event
                    )
            except CloudUnreachableError as e:
                self._set_state(SyncState.OFFLINE, operation="pull", error=str(e))
                raise
            except Exception as e:
                self._set_state(SyncState.ERROR, operation="pull", error=str(e))
                raise

            if result.error and not result.cancelled:
                self._set_state(SyncState.ERROR, operation="pull", error=result.error)
            else:
                self._set_state(SyncState.IDLE, operation="pull", **result.to_dict())
            return result

    def test_connection(self, overrides: dict[str, Any] | None = None) -> str:
        """Check the cloud connection.

        Args:
            overrides: Unsaved connection settings (cloud_url, api_key,
                cloud_provider, table_prefix) to test instead of the stored ones.

        Returns:
            Success message from the backend client.

        Raises:
            SyncNotConfiguredError: If no URL or API key is available.
            APIError: If the backend rejects the request.
        """
        config = self.get_config()
        if overrides:
            changes: dict[str, Any] = {}
            for key in ("cloud_url", "api_key", "table_prefix"):
                if overrides.get(key):
                    changes[key] = overrides[key]
            if overrides.get("cloud_provider"):
                changes["cloud_provider"] = CloudProvider(overrides["cloud_provider"])
            config = dataclasses.replace(config, **changes)

        if not config.is_configured:
            raise SyncNotConfiguredError("Cloud URL and API key required")
        with self._client_factory(
            config.to_cloud_config(timeout=self._policy.request_timeout)
        ) as client:
            return client.test_connection()

    # === Conflicts ===

    def resolve_conflict(
        self, conflict_id: int, keep: ConflictResolution | str
    ) -> ConflictRecord:
        """Settle a conflict recorded under the manual strategy.

        Keeping the remote version writes it over the local record. Keeping
        the local version queues the current local record so that the next
        push sends it to the cloud.

        Raises:
            SyncLockedError: If a pass is running.
            ValueError: If there is no open conflict with this id.
            RecordStoreError: If the remote version cannot be written locally.
        """
        keep = ConflictResolution(keep)
        with self._exclusive_pass():
            conflict = self._store.get_conflict(conflict_id)
            if conflict is None or conflict.resolved:
                raise ValueError(f"No open conflict with id {conflict_id}")

            if keep == ConflictResolution.REMOTE:
                self._apply_remote_version(conflict)
            else:
                local = self._records.get_record(conflict.table_name, conflict.record_id)
                if local is not None:
                    self._store.enqueue(
                        conflict.table_name, conflict.record_id, ChangeType.UPDATE, local
                    )
            self._store.resolve_conflict(conflict.id)

        logger.info(
            "Conflict #%d on %s:%s resolved, kept %s version",
            conflict.id,
            conflict.table_name,
            conflict.record_id,
            keep.value,
        )
        return dataclasses.replace(conflict, resolved=True)

    def _apply_remote_version(self, conflict: ConflictRecord) -> None:
        remote = conflict.remote_data or {}
        deleted_at = remote.get("deleted_at") or remote.get("deletedAt")
        if conflict.change_type == ChangeType.DELETE or deleted_at:
            stamp = deleted_at or conflict.server_updated_at or to_iso(self._store.now())
            self._records.soft_delete_record(conflict.table_name, conflict.record_id, str(stamp))
        else:
            self._records.upsert_record(conflict.table_name, conflict.record_id, remote)

    # === Status ===

    def get_status(self) -> dict[str, Any]:
        """Summary used by the status bar."""
        config = self.get_config()
        counts = self._store.count_by_status()
        return {
            "enabled": config.sync_enabled,
            "lastSyncAt": config.last_activity_at,
            "lastPushAt": to_iso(config.last_push_at),
            "pending": counts.pending,
            "errors": counts.error,
            "deviceId": config.device_id,
            "cloudProvider": config.cloud_provider.value,
            "isConfigured": config.is_configured,
        }

    def get_health(self) -> HealthSnapshot:
        return self._health.get_health(self.get_config(), is_locked=self.is_locked)


