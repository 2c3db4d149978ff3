"""Status and control operations exposed to the POS front end.

This module provides:
- ControlAPI: One method per operation, each returning an Envelope, plus
  dispatch() for tagged requests coming from a transport

No exception leaves this layer: every failure is turned into
`Envelope(success=False, error=...)`.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import TypeAdapter, ValidationError

from possync.client.api import APIError, CloudUnreachableError
from possync.client.records import RecordStoreError
from possync.client.sync.types import SyncError
from possync.core.types import ConflictResolution, SyncStatus
from possync.server.schemas import (
    ConfigUpdate,
    ConnectionOverride,
    ControlRequest,
    Envelope,
    HealthData,
    QueueFilter,
    StatusData,
)

if TYPE_CHECKING:
    from possync.client.scheduler import AutoSyncScheduler
    from possync.client.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error - check your internet connection and cloud URL"
TIMEOUT_ERROR_MESSAGE = "Connection timeout - check your internet connection"

# Failures reported to the caller as they are
EXPECTED_ERRORS: tuple[type[Exception], ...] = (
    SyncError,
    APIError,
    RecordStoreError,
    ValueError,
    httpx.HTTPError,
    sqlite3.Error,
)

_request_adapter: TypeAdapter[Any] = TypeAdapter(ControlRequest)


def parse_request(payload: dict[str, Any]) -> Any:
    """Validate a raw request into its ControlRequest variant.

    Raises:
        ValidationError: If the op is unknown or the arguments are invalid.
    """
    return _request_adapter.validate_python(payload)


class ControlAPI:
    """Status and control operations over a sync engine."""

    def __init__(
        self,
        engine: SyncEngine,
        scheduler: AutoSyncScheduler | None = None,
    ) -> None:
        """Initialize the control API.

        Args:
            engine: Engine the operations act on.
            scheduler: Auto-sync scheduler to notify of interval changes.
        """
        self._engine = engine
        self._scheduler = scheduler
        self._handlers: dict[str, Callable[[Any], Envelope[Any]]] = {
            "getStatus": lambda _: self.get_status(),
            "getHealth": lambda _: self.get_health(),
            "getConfig": lambda _: self.get_config(),
            "updateConfig": lambda r: self.update_config(r.config),
            "setEnabled": lambda r: self.set_enabled(r.enabled),
            "syncAll": lambda _: self.sync_all(),
            "pullChanges": lambda _: self.pull_changes(),
            "getPending": lambda r: self.get_pending(r.limit),
            "getQueue": lambda r: self.get_queue(r.filters),
            "clearQueue": lambda r: self.clear_queue(r.status),
            "resetFailed": lambda r: self.reset_failed(r.item_ids),
            "testConnection": lambda r: self.test_connection(r.config),
            "getConflicts": lambda r: self.get_conflicts(r.include_resolved),
            "resolveConflict": lambda r: self.resolve_conflict(r.conflict_id, r.keep),
        }

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    def set_scheduler(self, scheduler: AutoSyncScheduler | None) -> None:
        self._scheduler = scheduler

    def dispatch(self, request: Any) -> Envelope[Any]:
        """Run a tagged request.

        Args:
            request: A ControlRequest variant or its dict form ({"op": ...}).
        """
        if isinstance(request, dict):
            try:
                request = parse_request(request)
            except ValidationError as e:
                return Envelope.fail(f"Invalid request: {_validation_summary(e)}")
        handler = self._handlers.get(getattr(request, "op", ""))
        if handler is None:
            return Envelope.fail(f"Unknown operation: {getattr(request, 'op', None)}")
        return handler(request)

    def _guard(self, operation: str, func: Callable[[], Envelope[Any]]) -> Envelope[Any]:
        try:
            return func()
        except EXPECTED_ERRORS as e:
            logger.warning("%s failed: %s", operation, e)
            return Envelope.fail(str(e) or type(e).__name__)
        except Exception as e:
            logger.exception("Unexpected error in %s", operation)
            return Envelope.fail(f"Internal error: {e}")

    # === Status ===

    def get_status(self) -> Envelope[Any]:
        return self._guard(
            "getStatus",
            lambda: Envelope.ok(StatusData(**self._engine.get_status()).model_dump()),
        )

    def get_health(self) -> Envelope[Any]:
        def run() -> Envelope[Any]:
            snapshot = self._engine.get_health()
            return Envelope.ok(HealthData.model_validate(snapshot.to_dict()).model_dump())

        return self._guard("getHealth", run)

    # === Configuration ===

    def get_config(self) -> Envelope[Any]:
        return self._guard("getConfig", lambda: Envelope.ok(self._engine.get_config().to_dict()))

    def update_config(self, updates: ConfigUpdate | dict[str, Any]) -> Envelope[Any]:
        """Apply a partial configuration."""

        def run() -> Envelope[Any]:
            values = updates.updates() if isinstance(updates, ConfigUpdate) else dict(updates)
            config = self._engine.update_config(values)
            if self._scheduler is not None:
                self._scheduler.reschedule()
            if (
                config.sync_enabled
                and config.is_configured
                and not config.last_sync_at
                and ("cloud_url" in values or "api_key" in values)
            ):
                logger.info("Credentials set for the first time, initial sync on next pass")
            return Envelope.ok(config.to_dict())

        return self._guard("updateConfig", run)

    def set_enabled(self, enabled: bool) -> Envelope[Any]:
        def run() -> Envelope[Any]:
            config = self._engine.set_enabled(enabled)
            if enabled and not config.last_sync_at:
                logger.info("Sync enabled for the first time, initial sync on next pass")
            return Envelope.ok(config.to_dict())

        return self._guard("setEnabled", run)

    # === Passes ===

    def sync_all(self) -> Envelope[Any]:
        """Push pending entries.

        A pass cut short by a connectivity failure is reported as failed,
        with the counts of what was done before the failure.
        """

        def run() -> Envelope[Any]:
            result = self._engine.sync_all()
            if result.aborted:
                return Envelope.fail(result.error or "Sync aborted", data=result.to_dict())
            return Envelope.ok(result.to_dict())

        return self._guard("syncAll", run)

    def pull_changes(self) -> Envelope[Any]:
        def run() -> Envelope[Any]:
            result = self._engine.pull_changes()
            if result.error:
                return Envelope.fail(result.error, data=result.to_dict())
            return Envelope.ok(result.to_dict())

        return self._guard("pullChanges", run)

    # === Queue ===

    def get_pending(self, limit: int | None = None) -> Envelope[Any]:
        return self._guard(
            "getPending",
            lambda: Envelope.ok(
                [entry.to_dict() for entry in self._engine.store.list_pending(limit)]
            ),
        )

    def get_queue(self, filters: QueueFilter | dict[str, Any] | None = None) -> Envelope[Any]:
        def run() -> Envelope[Any]:
            query = filters if isinstance(filters, QueueFilter) else QueueFilter(**(filters or {}))
            entries = self._engine.store.list_entries(
                status=query.status, limit=query.limit, offset=query.offset
            )
            return Envelope.ok([entry.to_dict() for entry in entries])

        return self._guard("getQueue", run)

    def clear_queue(self, status: str | None = None) -> Envelope[Any]:
        def run() -> Envelope[Any]:
            value = SyncStatus(status).value if status else None
            removed = self._engine.store.clear(value)
            logger.info("Cleared %d sync queue entries (status: %s)", removed, value or "all")
            return Envelope.ok()

        return self._guard("clearQueue", run)

    def reset_failed(self, item_ids: list[int] | None = None) -> Envelope[Any]:
        """Put failed entries back to pending with a fresh retry budget."""

        def run() -> Envelope[Any]:
            count = self._engine.store.reset_failed(item_ids=item_ids)
            logger.info("Reset %d failed sync items", count)
            return Envelope.ok({"reset": count})

        return self._guard("resetFailed", run)

    def get_conflicts(self, include_resolved: bool = False) -> Envelope[Any]:
        return self._guard(
            "getConflicts",
            lambda: Envelope.ok(
                [c.to_dict() for c in self._engine.store.list_conflicts(include_resolved)]
            ),
        )

    def resolve_conflict(
        self, conflict_id: int, keep: ConflictResolution | str
    ) -> Envelope[Any]:
        """Settle a conflict by keeping the local or the remote version."""
        return self._guard(
            "resolveConflict",
            lambda: Envelope.ok(self._engine.resolve_conflict(conflict_id, keep).to_dict()),
        )

    # === Connection ===

    def test_connection(
        self, override: ConnectionOverride | dict[str, Any] | None = None
    ) -> Envelope[Any]:
        """Check the cloud connection with the stored or the given settings."""

        def run() -> Envelope[Any]:
            values: dict[str, Any] | None = None
            if isinstance(override, ConnectionOverride):
                values = override.model_dump(mode="json", exclude_none=True)
            elif override:
                values = dict(override)
            try:
                message = self._engine.test_connection(values)
            except CloudUnreachableError:
                return Envelope.fail(NETWORK_ERROR_MESSAGE)
            except httpx.TimeoutException:
                return Envelope.fail(TIMEOUT_ERROR_MESSAGE)
            return Envelope.ok({"message": message})

        return self._guard("testConnection", run)


def _validation_summary(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)

