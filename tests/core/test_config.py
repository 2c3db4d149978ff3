"""Tests for core configuration classes."""

from __future__ import annotations

import pytest

from possync.core.config import CloudConfig, HealthThresholds, SyncPolicy
from possync.core.types import CloudProvider


class TestCloudConfig:
    """Tests for CloudConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = CloudConfig(cloud_url="https://example.supabase.co", api_key="key")
        assert config.cloud_url == "https://example.supabase.co"
        assert config.api_key == "key"
        assert config.provider == CloudProvider.SUPABASE
        assert config.table_prefix == ""
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from the backend URL."""
        config = CloudConfig(cloud_url="https://example.supabase.co/", api_key="key")
        assert config.cloud_url == "https://example.supabase.co"

    def test_provider_from_string(self) -> None:
        """Should accept the provider as a plain string."""
        config = CloudConfig(cloud_url="http://localhost", api_key="key", provider="custom")  # type: ignore[arg-type]
        assert config.provider == CloudProvider.CUSTOM

    def test_unknown_provider_rejected(self) -> None:
        """Should reject unsupported providers."""
        with pytest.raises(ValueError):
            CloudConfig(cloud_url="http://localhost", api_key="key", provider="firebase")  # type: ignore[arg-type]

    def test_is_secure_https(self) -> None:
        """Should return True for HTTPS URLs."""
        config = CloudConfig(cloud_url="https://example.com", api_key="key")
        assert config.is_secure is True

    def test_is_secure_http(self) -> None:
        """Should return False for HTTP URLs."""
        config = CloudConfig(cloud_url="http://localhost:8000", api_key="key")
        assert config.is_secure is False


class TestSyncPolicy:
    """Tests for the engine policy defaults."""

    def test_defaults(self) -> None:
        """Defaults should match the documented behavior."""
        policy = SyncPolicy()
        assert policy.max_retries == 5
        assert policy.retry_window_seconds == 86400
        assert policy.rate_limit_delay == 0.1
        assert policy.request_timeout == 30.0
        assert policy.lock_timeout == 300
        assert policy.high_retry_threshold == 3
        assert policy.recent_error_window_seconds == 3600


class TestHealthThresholds:
    """Tests for the health classification thresholds."""

    def test_defaults(self) -> None:
        """Critical thresholds should sit above warning thresholds."""
        thresholds = HealthThresholds()
        assert thresholds.critical_error_rate == 20.0
        assert thresholds.warning_error_rate == 10.0
        assert thresholds.critical_stuck == 10
        assert thresholds.warning_stuck == 5
        assert thresholds.critical_sync_age_minutes == 60
        assert thresholds.warning_sync_age_minutes == 30
        assert thresholds.warning_high_retry == 5
        assert thresholds.warning_recent_errors == 20
