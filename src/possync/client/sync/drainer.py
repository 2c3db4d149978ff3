"""Rate-limited sequential push of the sync queue.

The drainer promotes retry-eligible failures, then pushes every pending entry
oldest first, one request at a time, pausing between items so the backend
never sees bursts. Order matters: a customer must reach the cloud before the
sale that references it.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from possync.client.api import CloudUnreachableError
from possync.client.sync.retry import promote_eligible_failures
from possync.client.sync.types import DrainResult
from possync.core.config import SyncPolicy

if TYPE_CHECKING:
    from possync.client.state import QueueStore
    from possync.client.sync.item import ItemSyncer

logger = logging.getLogger(__name__)


class Drainer:
    """Drains pending queue entries through an ItemSyncer."""

    def __init__(
        self,
        store: QueueStore,
        syncer: ItemSyncer,
        policy: SyncPolicy | None = None,
    ) -> None:
        self._store = store
        self._syncer = syncer
        self._policy = policy or SyncPolicy()

    def drain(self, cancel_event: threading.Event | None = None) -> DrainResult:
        """Run one drain pass.

        Individual failures are recorded on the entry and the pass goes on.
        A connectivity failure stops the pass: the failing entry and the
        ones after it stay pending. Cancellation stops before the next entry;
        an entry whose push was in flight is never marked as synced.

        Args:
            cancel_event: Set by another thread to stop the pass.

        Returns:
            Counts of synced and failed entries.
        """
        cancel = cancel_event or threading.Event()
        result = DrainResult()

        promote_eligible_failures(
            self._store,
            max_retries=self._policy.max_retries,
            window_seconds=self._policy.retry_window_seconds,
        )

        pending = self._store.list_pending()
        if not pending:
            logger.debug("No pending items to sync")
            return result

        logger.info("Syncing %d pending items", len(pending))
        delay = self._policy.rate_limit_delay

        for index, entry in enumerate(pending):
            if cancel.is_set():
                result.cancelled = True
                break

            try:
                outcome = self._syncer.sync_item(entry)
            except CloudUnreachableError as e:
                result.aborted = True
                result.error = str(e)
                logger.warning(
                    "Cloud unreachable, stopping sync after %d items: %s",
                    result.total,
                    e,
                )
                break

            if outcome.success:
                if cancel.is_set():
                    # Cancelled while in flight: leave it pending
                    result.cancelled = True
                    break
                self._store.mark_synced(entry.id)
                result.synced += 1
            else:
                self._store.mark_error(entry.id, outcome.error or "Sync failed")
                result.errors += 1

            if index < len(pending) - 1 and delay > 0 and cancel.wait(delay):
                result.cancelled = True
                break

        if result.cancelled:
            result.error = "Sync cancelled"
            logger.info("Sync cancelled after %d items", result.total)
        else:
            logger.info(
                "Sync pass finished: %d synced, %d errors", result.synced, result.errors
            )
        return result
