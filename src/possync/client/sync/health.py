"""Health monitoring of the sync queue.

This module provides:
- HealthMetrics: Counts and ages derived from the queue
- HealthSnapshot: Metrics plus a healthy/warning/critical classification
- classify: Apply the thresholds to a set of metrics
- HealthMonitor: Collect metrics from the queue store
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from possync.core.config import HealthThresholds, SyncPolicy
from possync.core.timestamps import to_epoch
from possync.core.types import HealthStatus

if TYPE_CHECKING:
    from possync.client.state import QueueStore, SyncConfig

logger = logging.getLogger(__name__)

NEVER_SYNCED_WARNING = "Never synced (initial sync pending)"


@dataclass
class HealthMetrics:
    """Queue metrics at a point in time."""

    total: int = 0
    pending: int = 0
    errors: int = 0
    stuck: int = 0
    synced: int = 0
    error_rate: float = 0.0
    high_retry_errors: int = 0
    recent_errors: int = 0
    last_sync_age_minutes: int | None = None
    last_sync_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "errors": self.errors,
            "stuck": self.stuck,
            "synced": self.synced,
            "errorRate": self.error_rate,
            "highRetryErrors": self.high_retry_errors,
            "recentErrors": self.recent_errors,
            "lastSyncAgeMinutes": self.last_sync_age_minutes,
            "lastSyncAt": self.last_sync_at,
        }


@dataclass
class HealthSnapshot:
    """Result of a health check."""

    status: HealthStatus
    metrics: HealthMetrics
    warnings: list[str] = field(default_factory=list)
    alerts: list[str] = field(default_factory=list)
    enabled: bool = False
    is_configured: bool = False
    is_locked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
            "warnings": list(self.warnings),
            "alerts": list(self.alerts),
            "enabled": self.enabled,
            "isConfigured": self.is_configured,
            "isLocked": self.is_locked,
        }


def classify(
    metrics: HealthMetrics,
    thresholds: HealthThresholds,
    enabled: bool = False,
) -> tuple[HealthStatus, list[str], list[str]]:
    """Classify metrics against the thresholds.

    Critical rules are checked first. Every rule that matches adds its
    message, so a critical queue may also carry warnings.

    Returns:
        (status, warnings, alerts)
    """
    warnings: list[str] = []
    alerts: list[str] = []
    age = metrics.last_sync_age_minutes

    if metrics.error_rate > thresholds.critical_error_rate:
        alerts.append(f"High error rate: {metrics.error_rate:.1f}%")
    elif metrics.error_rate > thresholds.warning_error_rate:
        warnings.append(f"Elevated error rate: {metrics.error_rate:.1f}%")

    if metrics.stuck > thresholds.critical_stuck:
        alerts.append(f"{metrics.stuck} items stuck in pending state")
    elif metrics.stuck > thresholds.warning_stuck:
        warnings.append(f"{metrics.stuck} items stuck in pending state")

    if age is not None and age > thresholds.critical_sync_age_minutes:
        alerts.append(f"Last sync was {age} minutes ago")
    elif age is not None and age > thresholds.warning_sync_age_minutes:
        warnings.append(f"Last sync was {age} minutes ago")

    if metrics.high_retry_errors > thresholds.warning_high_retry:
        warnings.append(f"{metrics.high_retry_errors} items with 3+ retry attempts")

    if metrics.recent_errors > thresholds.warning_recent_errors:
        warnings.append(f"{metrics.recent_errors} errors in the last hour")

    if enabled and metrics.last_sync_at is None:
        warnings.append(NEVER_SYNCED_WARNING)

    if alerts:
        status = HealthStatus.CRITICAL
    elif warnings:
        status = HealthStatus.WARNING
    else:
        status = HealthStatus.HEALTHY
    return status, warnings, alerts


class HealthMonitor:
    """Derives health snapshots from the queue store."""

    def __init__(
        self,
        store: QueueStore,
        policy: SyncPolicy | None = None,
        thresholds: HealthThresholds | None = None,
    ) -> None:
        self._store = store
        self._policy = policy or SyncPolicy()
        self._thresholds = thresholds or HealthThresholds()

    @property
    def thresholds(self) -> HealthThresholds:
        return self._thresholds

    def collect_metrics(self, config: SyncConfig) -> HealthMetrics:
        """Compute the queue metrics.

        Args:
            config: Current configuration (interval, watermark and last push).
        """
        now = self._store.now()
        counts = self._store.count_by_status()
        interval_seconds = config.sync_interval_minutes * 60

        error_rate = 0.0
        if counts.total:
            error_rate = round(counts.error / counts.total * 100, 2)

        # Pulls and pushes both count as sync activity
        last_sync_at = config.last_activity_at
        age_minutes = None
        if last_sync_at:
            try:
                age_minutes = max(0, math.floor((now - to_epoch(last_sync_at)) / 60))
            except ValueError:
                logger.warning("Unreadable last sync time: %s", last_sync_at)

        return HealthMetrics(
            total=counts.total,
            pending=counts.pending,
            errors=counts.error,
            stuck=self._store.count_stuck(created_before=now - interval_seconds),
            synced=counts.synced,
            error_rate=error_rate,
            high_retry_errors=self._store.count_high_retry(self._policy.high_retry_threshold),
            recent_errors=self._store.count_recent_errors(
                since=now - self._policy.recent_error_window_seconds
            ),
            last_sync_age_minutes=age_minutes,
            last_sync_at=last_sync_at,
        )

    def get_health(self, config: SyncConfig, is_locked: bool = False) -> HealthSnapshot:
        """Build a health snapshot.

        Args:
            config: Current configuration.
            is_locked: Whether a sync pass is running.
        """
        metrics = self.collect_metrics(config)
        status, warnings, alerts = classify(metrics, self._thresholds, config.sync_enabled)
        if status != HealthStatus.HEALTHY:
            logger.debug("Sync health %s: %s", status.value, alerts + warnings)
        return HealthSnapshot(
            status=status,
            metrics=metrics,
            warnings=warnings,
            alerts=alerts,
            enabled=config.sync_enabled,
            is_configured=config.is_configured,
            is_locked=is_locked,
        )
