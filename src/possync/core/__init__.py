"""Core module - Shared configuration and types."""

from possync.core.config import CloudConfig, HealthThresholds, SyncPolicy
from possync.core.types import (
    EXCLUDED_TABLES,
    SYNCABLE_TABLES,
    ChangeType,
    CloudProvider,
    ConflictStrategy,
    HealthStatus,
    SyncState,
    SyncStatus,
)

__all__ = [
    # Config
    "CloudConfig",
    "HealthThresholds",
    "SyncPolicy",
    # Types
    "EXCLUDED_TABLES",
    "SYNCABLE_TABLES",
    "ChangeType",
    "CloudProvider",
    "ConflictStrategy",
    "HealthStatus",
    "SyncState",
    "SyncStatus",
]
