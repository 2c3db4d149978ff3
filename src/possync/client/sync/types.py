"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError and subclasses: Pass-level failures
- ItemResult: Outcome of pushing one queue entry
- DrainResult: Outcome of a push pass
- PullResult: Outcome of a pull pass
- ErrorCategory: Transient/permanent classification of a failure
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from possync.core.types import SyncState


class SyncError(Exception):
    """Base exception for sync errors."""


class SyncLockedError(SyncError):
    """Another pass holds the sync lock."""

    def __init__(self, message: str = "Sync already in progress") -> None:
        super().__init__(message)


class SyncNotConfiguredError(SyncError):
    """Cloud URL or API key missing."""


class SyncDisabledError(SyncError):
    """Sync is switched off in the configuration."""


class PayloadError(SyncError):
    """A queued payload cannot be sent as it is."""


@dataclass
class ErrorCategory:
    """Classification of a push failure.

    Attributes:
        transient: True if the same request may succeed later.
    """

    transient: bool

    @property
    def prefix(self) -> str:
        """Tag stored in front of the error message."""
        return "[RETRYABLE]" if self.transient else "[PERMANENT]"


@dataclass
class ItemResult:
    """Outcome of pushing one queue entry."""

    success: bool
    error: str | None = None
    remote_id: str | None = None


@dataclass
class DrainResult:
    """Outcome of a push pass.

    Attributes:
        synced: Entries pushed successfully.
        errors: Entries that failed and were marked as error.
        aborted: True if the pass stopped on a connectivity failure.
        cancelled: True if the pass was cancelled by the caller.
        error: Reason of the abort, if any.
    """

    synced: int = 0
    errors: int = 0
    aborted: bool = False
    cancelled: bool = False
    error: str | None = None

    @property
    def total(self) -> int:
        """Entries attempted with a recorded outcome."""
        return self.synced + self.errors

    def to_dict(self) -> dict[str, int]:
        return {"synced": self.synced, "errors": self.errors, "total": self.total}


@dataclass
class PullResult:
    """Outcome of a pull pass.

    Attributes:
        applied: Remote changes written locally.
        conflicts: Remote changes held back for manual resolution.
        skipped: Remote changes discarded (client wins, already deleted).
        total: Remote changes received.
        watermark: New watermark, None if it did not move.
        error: Reason of the abort, if any.
        settled: (table, record id) of the changes applied or held back.
    """

    applied: int = 0
    conflicts: int = 0
    skipped: int = 0
    total: int = 0
    watermark: str | None = None
    cancelled: bool = False
    error: str | None = None
    settled: set[tuple[str, str]] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "conflicts": self.conflicts,
            "skipped": self.skipped,
            "total": self.total,
        }


# Type alias for state change listeners: (new state, details)
StateListener = Callable[[SyncState, dict[str, Any]], None]
