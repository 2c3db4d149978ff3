"""Tests for the sync engine."""

from __future__ import annotations

from typing import Any

import pytest

from possync.client.api import (
    APIError,
    AuthenticationError,
    CloudUnreachableError,
    RemoteChange,
)
from possync.client.records import SQLiteRecordStore
from possync.client.state import ConflictRecord, QueueStore
from possync.client.sync.engine import NOT_CONFIGURED_MESSAGE, SyncEngine
from possync.client.sync.types import (
    SyncDisabledError,
    SyncError,
    SyncLockedError,
    SyncNotConfiguredError,
)
from possync.core.types import (
    ChangeType,
    CloudProvider,
    ConflictResolution,
    HealthStatus,
    SyncState,
    SyncStatus,
)


class StateRecorder:
    """Collects state notifications."""

    def __init__(self) -> None:
        self.events: list[tuple[SyncState, dict[str, Any]]] = []

    def __call__(self, state: SyncState, details: dict[str, Any]) -> None:
        self.events.append((state, details))

    @property
    def states(self) -> list[SyncState]:
        return [state for state, _ in self.events]


class TestSyncAll:
    """Tests for push passes."""

    def test_pushes_pending_entries(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        entry = engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        recorder = StateRecorder()
        engine.add_listener(recorder)

        result = engine.sync_all()

        assert result.synced == 1
        assert engine.store.get_entry(entry.id).sync_status == SyncStatus.SYNCED  # type: ignore[union-attr]
        assert recorder.states == [SyncState.SYNCING, SyncState.IDLE]
        assert recorder.events[-1][1]["synced"] == 1
        assert cloud.closed == 1

    def test_uses_stored_connection_settings(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        engine.sync_all()

        (config,) = cloud.configs
        assert config.cloud_url == "https://example.supabase.co"
        assert config.api_key == "test-api-key-123"
        assert config.timeout == engine.policy.request_timeout

    def test_errors_set_error_state(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        cloud.failures["c1"] = APIError("bad", 400)

        result = engine.sync_all()

        assert result.errors == 1
        assert engine.state == SyncState.ERROR

    def test_unreachable_sets_offline(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        entry = engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        cloud.failures["c1"] = CloudUnreachableError("Cannot reach backend")

        result = engine.sync_all()

        assert result.aborted is True
        assert engine.state == SyncState.OFFLINE
        assert engine.store.get_entry(entry.id).sync_status == SyncStatus.PENDING  # type: ignore[union-attr]

    def test_disabled(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        engine.set_enabled(False)

        with pytest.raises(SyncDisabledError, match="Sync is disabled"):
            engine.sync_all()

        assert cloud.configs == []
        assert engine.is_locked is False

    def test_not_configured(self, store: QueueStore, cloud) -> None:  # type: ignore[no-untyped-def]
        store.update_config({"sync_enabled": True})
        engine = SyncEngine(store, client_factory=lambda config: cloud)

        with pytest.raises(SyncNotConfiguredError) as exc_info:
            engine.sync_all()

        assert str(exc_info.value) == NOT_CONFIGURED_MESSAGE
        assert engine.is_locked is False

    def test_locks_released_after_pass(self, engine: SyncEngine) -> None:
        engine.sync_all()

        assert engine.is_locked is False
        assert engine.store.is_lock_held() is False

    def test_delivery_records_push_time(self, engine: SyncEngine, clock) -> None:  # type: ignore[no-untyped-def]
        engine.store.set_last_sync_at("2025-06-15T10:00:00+00:00")
        engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})

        engine.sync_all()

        config = engine.get_config()
        assert config.last_push_at == clock.now
        assert config.last_activity_at == "2025-06-15T15:06:40+00:00"

    def test_pass_without_delivery_keeps_push_time(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        engine.store.set_last_sync_at("2025-06-15T10:00:00+00:00")
        engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        cloud.failures["c1"] = APIError("bad", 400)

        engine.sync_all()

        config = engine.get_config()
        assert config.last_push_at is None
        assert config.last_activity_at == "2025-06-15T10:00:00+00:00"

    def test_pushed_record_pulled_back_without_conflict(
        self, engine: SyncEngine, cloud, customers_table: QueueStore  # type: ignore[no-untyped-def]
    ) -> None:
        """A record this device pushed is applied when the cloud sends it back."""
        engine.update_config({"conflict_resolution_strategy": "manual"})
        engine.store.set_last_sync_at("2025-06-15T10:00:00+00:00")
        customers_table.connection.execute(
            "INSERT INTO customers (id, name, updated_at) VALUES ('c1', 'Alice', '2025-06-15T11:00:00Z')"
        )
        row = {"id": "c1", "name": "Alice", "updated_at": "2025-06-15T11:00:00Z"}
        engine.store.enqueue("customers", "c1", "update", row)

        assert engine.sync_all().synced == 1

        cloud.changes = [RemoteChange("customers", "c1", ChangeType.UPDATE, row, "2025-06-15T11:00:01Z")]
        result = engine.pull_changes()

        assert (result.applied, result.conflicts) == (1, 0)
        assert engine.store.list_conflicts() == []


class TestPassExclusion:
    """Tests for the single-pass guarantee."""

    def test_concurrent_pass_rejected(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        """A pass requested while another runs fails immediately."""
        engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        seen: list[Exception] = []

        def start_second_pass(table_name: str, record_id: str) -> None:
            assert engine.is_locked is True
            try:
                engine.pull_changes()
            except SyncLockedError as e:
                seen.append(e)

        cloud.on_upsert = start_second_pass

        result = engine.sync_all()

        assert result.synced == 1
        assert len(seen) == 1
        assert str(seen[0]) == "Sync already in progress"

    def test_lock_held_by_other_process(self, engine: SyncEngine, tmp_path) -> None:  # type: ignore[no-untyped-def]
        other = QueueStore(tmp_path / "pos.db")
        try:
            assert other.acquire_lock(timeout=300) is True

            with pytest.raises(SyncLockedError):
                engine.sync_all()
            assert engine.is_locked is True
        finally:
            other.release_lock()
            other.close()

        engine.sync_all()

    def test_cancel_stops_pass(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        for record_id in ("a", "b", "c"):
            engine.store.enqueue("customers", record_id, "create", {"name": record_id})
        cloud.on_upsert = lambda table_name, record_id: engine.cancel()

        result = engine.sync_all()

        assert result.cancelled is True
        assert result.synced == 0
        assert cloud.attempted_ids == ["a"]

    def test_cancel_is_reset_for_next_pass(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        engine.cancel()
        engine.store.enqueue("customers", "a", "create", {"name": "a"})

        result = engine.sync_all()

        assert result.synced == 1


class TestPullChanges:
    """Tests for pull passes."""

    def test_applies_remote_changes(self, engine: SyncEngine, cloud, customers_table: QueueStore) -> None:  # type: ignore[no-untyped-def]
        cloud.changes = [
            RemoteChange("customers", "c1", ChangeType.UPDATE, {"name": "Alice"}, "2025-06-15T12:00:00Z")
        ]
        recorder = StateRecorder()
        engine.add_listener(recorder)

        result = engine.pull_changes()

        assert result.applied == 1
        assert engine.get_config().last_sync_at == "2025-06-15T12:00:00+00:00"
        assert recorder.states == [SyncState.SYNCING, SyncState.IDLE]

    def test_listing_failure_sets_error(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        cloud.changes_error = AuthenticationError("bad key", 401)

        with pytest.raises(AuthenticationError):
            engine.pull_changes()

        assert engine.state == SyncState.ERROR
        assert engine.is_locked is False

    def test_unreachable_sets_offline(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        cloud.changes_error = CloudUnreachableError("Cannot reach backend")

        with pytest.raises(CloudUnreachableError):
            engine.pull_changes()

        assert engine.state == SyncState.OFFLINE

    def test_disabled(self, engine: SyncEngine) -> None:
        engine.set_enabled(False)

        with pytest.raises(SyncDisabledError):
            engine.pull_changes()


class TestFirstSync:
    """Tests for the first push pass of a database without a watermark."""

    def test_existing_rows_pushed(self, engine: SyncEngine, cloud, customers_table: QueueStore) -> None:  # type: ignore[no-untyped-def]
        customers_table.connection.execute("INSERT INTO customers (id, name) VALUES ('c1', 'Alice')")
        cloud.changes = [
            RemoteChange("customers", "c2", ChangeType.UPDATE, {"name": "Bob"}, "2025-06-15T12:00:00Z")
        ]

        result = engine.sync_all()

        assert result.synced == 1
        assert cloud.since_values == [None]
        assert cloud.attempted_ids == ["c1"]
        assert engine.get_config().last_sync_at == "2025-06-15T12:00:00+00:00"

    def test_runs_once(self, engine: SyncEngine, cloud, customers_table: QueueStore) -> None:  # type: ignore[no-untyped-def]
        engine.sync_all()
        customers_table.connection.execute("INSERT INTO customers (id, name) VALUES ('c1', 'Alice')")

        result = engine.sync_all()

        assert result.total == 0
        assert cloud.since_values == [None]

    def test_listing_failure_fails_pass(self, engine: SyncEngine, cloud, customers_table: QueueStore) -> None:  # type: ignore[no-untyped-def]
        customers_table.connection.execute("INSERT INTO customers (id, name) VALUES ('c1', 'Alice')")
        cloud.changes_error = AuthenticationError("bad key", 401)

        with pytest.raises(AuthenticationError):
            engine.sync_all()

        assert engine.state == SyncState.ERROR
        assert engine.store.list_pending() == []
        assert engine.is_locked is False

    def test_apply_failure_fails_pass(self, engine: SyncEngine, cloud, customers_table: QueueStore) -> None:  # type: ignore[no-untyped-def]
        cloud.changes = [
            RemoteChange("customers", "c1", ChangeType.UPDATE, {"phone": "123"}, "2025-06-15T12:00:00Z")
        ]

        with pytest.raises(SyncError, match="Initial sync failed"):
            engine.sync_all()

        assert engine.get_config().last_sync_at is None


class TestResolveConflict:
    """Tests for settling conflicts by hand."""

    @pytest.fixture
    def conflict(self, engine: SyncEngine, cloud, customers_table: QueueStore) -> ConflictRecord:  # type: ignore[no-untyped-def]
        engine.update_config({"conflict_resolution_strategy": "manual"})
        customers_table.connection.execute("INSERT INTO customers (id, name) VALUES ('c1', 'Local')")
        engine.store.enqueue("customers", "c1", "update", {"name": "Local"})
        cloud.changes = [
            RemoteChange("customers", "c1", ChangeType.UPDATE, {"name": "Remote"}, "2025-06-15T12:00:00Z")
        ]
        engine.pull_changes()
        (recorded,) = engine.store.list_conflicts()
        return recorded

    def test_keep_remote(self, engine: SyncEngine, conflict: ConflictRecord) -> None:
        resolved = engine.resolve_conflict(conflict.id, "remote")

        assert resolved.resolved is True
        records = SQLiteRecordStore(engine.store.connection, engine.store.lock)
        assert records.get_record("customers", "c1")["name"] == "Remote"  # type: ignore[index]
        assert engine.store.list_conflicts() == []

    def test_keep_local_queues_local_version(self, engine: SyncEngine, conflict: ConflictRecord) -> None:
        engine.store.clear()

        engine.resolve_conflict(conflict.id, ConflictResolution.LOCAL)

        (entry,) = engine.store.list_pending()
        assert (entry.record_id, entry.change_type) == ("c1", ChangeType.UPDATE)
        assert entry.data["name"] == "Local"  # type: ignore[index]
        assert engine.store.list_conflicts() == []

    def test_resolved_conflict_rejected(self, engine: SyncEngine, conflict: ConflictRecord) -> None:
        engine.resolve_conflict(conflict.id, "remote")

        with pytest.raises(ValueError, match=f"No open conflict with id {conflict.id}"):
            engine.resolve_conflict(conflict.id, "local")

    def test_unknown_conflict_rejected(self, engine: SyncEngine) -> None:
        with pytest.raises(ValueError, match="No open conflict with id 99"):
            engine.resolve_conflict(99, "remote")


class TestConfiguration:
    """Tests for configuration access through the engine."""

    def test_update_config(self, engine: SyncEngine) -> None:
        config = engine.update_config({"sync_interval_minutes": 15})

        assert config.sync_interval_minutes == 15
        assert engine.get_config().sync_interval_minutes == 15

    def test_update_config_invalid(self, engine: SyncEngine) -> None:
        with pytest.raises(ValueError):
            engine.update_config({"bogus": True})


class TestConnectionTest:
    """Tests for test_connection."""

    def test_stored_settings(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        assert engine.test_connection() == "Connection successful"
        assert cloud.closed == 1

    def test_overrides_are_not_saved(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        message = engine.test_connection(
            {"cloud_url": "http://localhost:9000", "api_key": "other-api-key-456", "cloud_provider": "custom"}
        )

        assert message == "Connection successful"
        (config,) = cloud.configs
        assert config.cloud_url == "http://localhost:9000"
        assert config.api_key == "other-api-key-456"
        assert config.provider == CloudProvider.CUSTOM
        assert engine.get_config().cloud_url == "https://example.supabase.co"

    def test_missing_credentials(self, store: QueueStore, cloud) -> None:  # type: ignore[no-untyped-def]
        engine = SyncEngine(store, client_factory=lambda config: cloud)

        with pytest.raises(SyncNotConfiguredError, match="Cloud URL and API key required"):
            engine.test_connection()

    def test_backend_error_propagates(self, engine: SyncEngine, cloud) -> None:  # type: ignore[no-untyped-def]
        cloud.connection_error = AuthenticationError("Invalid API key or insufficient permissions", 401)

        with pytest.raises(AuthenticationError):
            engine.test_connection()


class TestStatusAndHealth:
    """Tests for status summaries."""

    def test_get_status(self, engine: SyncEngine) -> None:
        engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        failed = engine.store.enqueue("customers", "c2", "create", {"name": "Bob"})
        engine.store.mark_error(failed.id, "boom")

        status = engine.get_status()

        assert status["enabled"] is True
        assert status["lastSyncAt"] is None
        assert status["lastPushAt"] is None
        assert status["pending"] == 1
        assert status["errors"] == 1
        assert status["deviceId"] == engine.get_config().device_id
        assert status["cloudProvider"] == "supabase"
        assert status["isConfigured"] is True

    def test_status_reports_push(self, engine: SyncEngine) -> None:
        """A push is sync activity even while the pull watermark is older."""
        engine.store.set_last_sync_at("2025-06-15T10:00:00+00:00")
        engine.store.enqueue("customers", "c1", "create", {"name": "Alice"})
        engine.sync_all()

        status = engine.get_status()

        assert status["lastPushAt"] == "2025-06-15T15:06:40+00:00"
        assert status["lastSyncAt"] == "2025-06-15T15:06:40+00:00"

    def test_get_health(self, engine: SyncEngine) -> None:
        """An enabled engine that never synced reports a warning."""
        snapshot = engine.get_health()

        assert snapshot.status == HealthStatus.WARNING
        assert snapshot.is_locked is False
        assert snapshot.enabled is True


class TestListeners:
    """Tests for state listeners."""

    def test_failing_listener_does_not_break_pass(self, engine: SyncEngine) -> None:
        def broken(state: SyncState, details: dict[str, Any]) -> None:
            raise RuntimeError("listener bug")

        recorder = StateRecorder()
        engine.add_listener(broken)
        engine.add_listener(recorder)

        engine.sync_all()

        assert recorder.states == [SyncState.SYNCING, SyncState.IDLE]

    def test_remove_listener(self, engine: SyncEngine) -> None:
        recorder = StateRecorder()
        engine.add_listener(recorder)
        engine.remove_listener(recorder)

        engine.sync_all()

        assert recorder.events == []
