"""Tests for queue health monitoring."""

from __future__ import annotations

import pytest

from possync.client.state import QueueStore
from possync.client.sync.health import (
    NEVER_SYNCED_WARNING,
    HealthMetrics,
    HealthMonitor,
    classify,
)
from possync.core.config import HealthThresholds
from possync.core.types import HealthStatus


class TestClassify:
    """Tests for threshold classification."""

    def test_healthy(self) -> None:
        status, warnings, alerts = classify(
            HealthMetrics(last_sync_at="2025-06-15T15:00:00+00:00"), HealthThresholds()
        )

        assert status == HealthStatus.HEALTHY
        assert warnings == []
        assert alerts == []

    @pytest.mark.parametrize(
        ("metrics", "message"),
        [
            (HealthMetrics(error_rate=25.0), "High error rate: 25.0%"),
            (HealthMetrics(stuck=11), "11 items stuck in pending state"),
            (HealthMetrics(last_sync_age_minutes=61), "Last sync was 61 minutes ago"),
        ],
    )
    def test_critical(self, metrics: HealthMetrics, message: str) -> None:
        status, warnings, alerts = classify(metrics, HealthThresholds())

        assert status == HealthStatus.CRITICAL
        assert alerts == [message]
        assert warnings == []

    @pytest.mark.parametrize(
        ("metrics", "message"),
        [
            (HealthMetrics(error_rate=15.0), "Elevated error rate: 15.0%"),
            (HealthMetrics(stuck=6), "6 items stuck in pending state"),
            (HealthMetrics(last_sync_age_minutes=45), "Last sync was 45 minutes ago"),
            (HealthMetrics(high_retry_errors=6), "6 items with 3+ retry attempts"),
            (HealthMetrics(recent_errors=21), "21 errors in the last hour"),
        ],
    )
    def test_warning(self, metrics: HealthMetrics, message: str) -> None:
        status, warnings, alerts = classify(metrics, HealthThresholds())

        assert status == HealthStatus.WARNING
        assert warnings == [message]
        assert alerts == []

    def test_thresholds_are_exclusive(self) -> None:
        """A metric equal to its threshold does not trigger."""
        metrics = HealthMetrics(
            error_rate=10.0,
            stuck=5,
            last_sync_age_minutes=30,
            high_retry_errors=5,
            recent_errors=20,
        )

        status, _, _ = classify(metrics, HealthThresholds())

        assert status == HealthStatus.HEALTHY

    def test_critical_with_warnings(self) -> None:
        """Warnings are reported alongside alerts."""
        metrics = HealthMetrics(error_rate=50.0, stuck=7)

        status, warnings, alerts = classify(metrics, HealthThresholds())

        assert status == HealthStatus.CRITICAL
        assert alerts == ["High error rate: 50.0%"]
        assert warnings == ["7 items stuck in pending state"]

    def test_never_synced_only_when_enabled(self) -> None:
        metrics = HealthMetrics()

        assert classify(metrics, HealthThresholds(), enabled=False)[0] == HealthStatus.HEALTHY
        status, warnings, _ = classify(metrics, HealthThresholds(), enabled=True)
        assert status == HealthStatus.WARNING
        assert warnings == [NEVER_SYNCED_WARNING]

    def test_custom_thresholds(self) -> None:
        thresholds = HealthThresholds(critical_stuck=2, warning_stuck=1)

        status, _, alerts = classify(HealthMetrics(stuck=3), thresholds)

        assert status == HealthStatus.CRITICAL
        assert alerts == ["3 items stuck in pending state"]


class TestHealthMonitor:
    """Tests for collecting metrics from the queue."""

    def test_empty_queue(self, store: QueueStore) -> None:
        metrics = HealthMonitor(store).collect_metrics(store.get_config())

        assert metrics.total == 0
        assert metrics.error_rate == 0.0
        assert metrics.last_sync_age_minutes is None

    def test_error_rate(self, store: QueueStore) -> None:
        entries = [store.enqueue("customers", f"c{i}", "create", {"n": i}) for i in range(3)]
        store.mark_error(entries[0].id, "boom")
        store.mark_synced(entries[1].id)

        metrics = HealthMonitor(store).collect_metrics(store.get_config())

        assert (metrics.total, metrics.pending, metrics.errors, metrics.synced) == (3, 1, 1, 1)
        assert metrics.error_rate == 33.33

    def test_stuck_uses_sync_interval(self, store: QueueStore, clock) -> None:  # type: ignore[no-untyped-def]
        """Pending entries older than one interval are stuck."""
        store.enqueue("customers", "old", "create", {"n": 1})
        clock.advance(6 * 60)
        store.enqueue("customers", "new", "create", {"n": 1})

        metrics = HealthMonitor(store).collect_metrics(store.get_config())

        assert metrics.stuck == 1

    def test_last_sync_age(self, store: QueueStore, clock) -> None:  # type: ignore[no-untyped-def]
        store.set_last_sync_at("2025-06-15T15:06:40+00:00")
        clock.advance(90 * 60 + 30)

        metrics = HealthMonitor(store).collect_metrics(store.get_config())

        assert metrics.last_sync_age_minutes == 90
        assert metrics.last_sync_at == "2025-06-15T15:06:40+00:00"

    def test_push_counts_as_sync(self, store: QueueStore, clock) -> None:  # type: ignore[no-untyped-def]
        """A recent push resets the age even when the last pull is old."""
        store.set_last_sync_at("2025-06-15T10:00:00+00:00")
        clock.advance(30 * 60)
        store.set_last_push_at(clock.now)
        clock.advance(5 * 60)

        metrics = HealthMonitor(store).collect_metrics(store.get_config())

        assert metrics.last_sync_age_minutes == 5
        assert metrics.last_sync_at == "2025-06-15T15:36:40+00:00"

    def test_future_watermark_age_is_zero(self, store: QueueStore) -> None:
        store.set_last_sync_at("2025-06-15T16:00:00+00:00")

        metrics = HealthMonitor(store).collect_metrics(store.get_config())

        assert metrics.last_sync_age_minutes == 0

    def test_get_health_snapshot(self, configured_store: QueueStore, clock) -> None:  # type: ignore[no-untyped-def]
        configured_store.set_last_sync_at("2025-06-15T15:06:40+00:00")
        clock.advance(2 * 60 * 60)

        snapshot = HealthMonitor(configured_store).get_health(
            configured_store.get_config(), is_locked=True
        )

        assert snapshot.status == HealthStatus.CRITICAL
        assert snapshot.alerts == ["Last sync was 120 minutes ago"]
        data = snapshot.to_dict()
        assert data["status"] == "critical"
        assert data["enabled"] is True
        assert data["isConfigured"] is True
        assert data["isLocked"] is True
        assert data["metrics"]["lastSyncAgeMinutes"] == 120
        assert data["metrics"]["errorRate"] == 0.0
