"""Shared configuration classes for possync.

This module defines the connection settings for the cloud backend and the
policy knobs of the sync engine. Every threshold used by the retry selector,
the drainer and the health monitor lives here.
"""

from __future__ import annotations

from dataclasses import dataclass

from possync.core.types import CloudProvider


@dataclass
class CloudConfig:
    """Configuration for connecting to the cloud backend.

    Attributes:
        cloud_url: Base URL of the backend (e.g., "https://xyz.supabase.co").
        api_key: API key sent with every request.
        provider: Backend flavour.
        table_prefix: Optional prefix prepended to remote table names.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        max_retries: Retries of a single request on transient failures.
        initial_backoff: First retry delay in seconds.
    """

    cloud_url: str
    api_key: str
    provider: CloudProvider = CloudProvider.SUPABASE
    table_prefix: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True
    max_retries: int = 2
    initial_backoff: float = 1.0

    def __post_init__(self) -> None:
        """Normalize URL and provider."""
        self.cloud_url = self.cloud_url.rstrip("/")
        self.provider = CloudProvider(self.provider)

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if the backend URL uses HTTPS.
        """
        return self.cloud_url.startswith("https://")


@dataclass
class SyncPolicy:
    """Retry, rate limiting and locking policy of the sync engine.

    Attributes:
        max_retries: Promotions allowed per entry before it stays in error.
        retry_window_seconds: Only errors younger than this are promoted.
        rate_limit_delay: Pause between two pushed items, in seconds.
        request_timeout: Timeout of a single cloud request, in seconds.
        lock_timeout: Lifetime of the database sync lock, in seconds.
        high_retry_threshold: Retry count from which an error is "high-retry".
        recent_error_window_seconds: Window for the "recent errors" metric.
    """

    max_retries: int = 5
    retry_window_seconds: float = 24 * 60 * 60
    rate_limit_delay: float = 0.1
    request_timeout: float = 30.0
    lock_timeout: float = 5 * 60
    high_retry_threshold: int = 3
    recent_error_window_seconds: float = 60 * 60


@dataclass
class HealthThresholds:
    """Thresholds used to classify queue health.

    Rates are percentages, ages are minutes, the rest are item counts.
    A metric must strictly exceed a threshold to trigger it.
    """

    critical_error_rate: float = 20.0
    warning_error_rate: float = 10.0
    critical_stuck: int = 10
    warning_stuck: int = 5
    critical_sync_age_minutes: int = 60
    warning_sync_age_minutes: int = 30
    warning_high_retry: int = 5
    warning_recent_errors: int = 20
