"""Push of a single queue entry.

This module provides:
- categorize_error: Tell transient failures from permanent ones
- ItemSyncer: Shape an entry's payload and push it to the cloud
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from possync.client.api import APIError, CloudUnreachableError
from possync.client.sync.types import ErrorCategory, ItemResult, PayloadError
from possync.core.timestamps import to_iso
from possync.core.types import ChangeType

if TYPE_CHECKING:
    from possync.client.api import CloudClient
    from possync.client.state import QueueEntry

logger = logging.getLogger(__name__)


def categorize_error(error: Exception) -> ErrorCategory:
    """Classify a push failure.

    Timeouts, network errors, 5xx, 429 and 404 (the parent row may not be
    there yet) are transient. Other 4xx responses and unusable payloads are
    permanent. Anything unrecognized is treated as transient.
    """
    if isinstance(error, PayloadError):
        return ErrorCategory(transient=False)
    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return ErrorCategory(transient=True)
    if isinstance(error, APIError) and error.status_code is not None:
        status = error.status_code
        if status in (404, 429):
            return ErrorCategory(transient=True)
        if 400 <= status < 500:
            return ErrorCategory(transient=False)
    return ErrorCategory(transient=True)


def describe_error(error: Exception) -> str:
    """Render an exception for the queue's error_message column."""
    if isinstance(error, APIError) and error.status_code is not None:
        return f"HTTP {error.status_code}: {error}"
    return str(error) or type(error).__name__


class ItemSyncer:
    """Pushes one queue entry to the cloud."""

    def __init__(
        self,
        client: CloudClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._clock = clock

    def prepare_payload(self, entry: QueueEntry) -> dict[str, Any]:
        """Build the record to send for an entry.

        Deletes are sent as soft deletes: the last known snapshot plus a
        deleted_at timestamp.

        Raises:
            PayloadError: If the entry has no usable payload.
        """
        if entry.parse_error:
            raise PayloadError("Invalid JSON data in queue")
        if entry.data is not None and not isinstance(entry.data, dict):
            raise PayloadError(
                f"Payload of {entry.table_name}:{entry.record_id} is not an object"
            )

        if entry.change_type == ChangeType.DELETE:
            payload = dict(entry.data or {})
            if not payload.get("deleted_at") and not payload.get("deletedAt"):
                payload["deleted_at"] = to_iso(self._clock())
            return payload

        if not entry.data:
            raise PayloadError(
                f"Missing payload for {entry.change_type.value} of "
                f"{entry.table_name}:{entry.record_id}"
            )
        return dict(entry.data)

    def sync_item(self, entry: QueueEntry) -> ItemResult:
        """Push an entry and report the outcome.

        Raises:
            CloudUnreachableError: If the backend cannot be reached at all;
                the caller aborts the pass and the entry stays pending.
        """
        try:
            payload = self.prepare_payload(entry)
            upserted = self._client.upsert_record(
                entry.table_name, entry.record_id, payload
            )
        except CloudUnreachableError:
            raise
        except (APIError, PayloadError, httpx.HTTPError, ValueError) as e:
            category = categorize_error(e)
            message = f"{category.prefix} {describe_error(e)}"
            logger.warning(
                "Failed to sync %s:%s (%s): %s",
                entry.table_name,
                entry.record_id,
                entry.change_type.value,
                message,
            )
            return ItemResult(success=False, error=message)

        logger.debug(
            "Synced %s:%s (%s)", entry.table_name, entry.record_id, entry.change_type.value
        )
        return ItemResult(success=True, remote_id=upserted.remote_id)
