"""Sync operations between the local queue and the cloud.

Architecture:
    QueueStore → Drainer → ItemSyncer → CloudClient   (push)
    CloudClient → Puller → RecordStore               (pull)

Components:
- **promote_eligible_failures**: Retry selector run before each drain pass
- **Drainer**: Sequential, rate-limited push of pending entries
- **ItemSyncer**: Push of one entry, transient/permanent error classification
- **Puller**: Applies remote changes and moves the watermark
- **Bootstrapper**: First sync of a database that predates sync
- **HealthMonitor**: Queue metrics and healthy/warning/critical status
- **SyncEngine**: Pass lock, cancellation, configuration snapshot

The components that talk to the cloud client (engine, drainer, item,
puller, bootstrap) are imported from their own modules; the cloud client itself
depends on the retry helpers exported here.
"""

from possync.client.sync.health import (
    HealthMetrics,
    HealthMonitor,
    HealthSnapshot,
    classify,
)
from possync.client.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_WINDOW,
    promote_eligible_failures,
    retry_with_backoff,
)
from possync.client.sync.types import (
    DrainResult,
    ErrorCategory,
    ItemResult,
    PayloadError,
    PullResult,
    StateListener,
    SyncDisabledError,
    SyncError,
    SyncLockedError,
    SyncNotConfiguredError,
)

__all__ = [
    # Health
    "HealthMetrics",
    "HealthMonitor",
    "HealthSnapshot",
    "classify",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_BACKOFF",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_RETRY_WINDOW",
    "promote_eligible_failures",
    "retry_with_backoff",
    # Types
    "DrainResult",
    "ErrorCategory",
    "ItemResult",
    "PayloadError",
    "PullResult",
    "StateListener",
    "SyncDisabledError",
    "SyncError",
    "SyncLockedError",
    "SyncNotConfiguredError",
]
