"""First sync of a database that existed before sync was switched on.

Rows written before sync was enabled never went through the queue. The first
push pass (no watermark yet) therefore pulls everything the cloud holds, then
queues the local rows the pull did not settle, parents before the rows that
reference them, so the following drain uploads them.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from possync.client.sync.puller import Puller
from possync.client.sync.types import PullResult
from possync.core.types import SYNC_ORDER, ChangeType

if TYPE_CHECKING:
    from possync.client.api import CloudClient
    from possync.client.records import RecordStore
    from possync.client.state import QueueStore, SyncConfig

logger = logging.getLogger(__name__)


class Bootstrapper:
    """Brings the cloud and an existing local database together once."""

    def __init__(self, store: QueueStore, records: RecordStore) -> None:
        self._store = store
        self._records = records

    @staticmethod
    def is_needed(config: SyncConfig) -> bool:
        """True until the first pull has set a watermark."""
        return not config.last_sync_at

    def run(
        self,
        client: CloudClient,
        config: SyncConfig,
        cancel_event: threading.Event | None = None,
    ) -> PullResult:
        """Pull the whole cloud, then queue the local rows it did not settle.

        Local rows are only queued after a complete pull: a cancelled or
        failed pull leaves the queue untouched and the next pass starts over.

        Returns:
            Result of the initial pull.

        Raises:
            APIError: If the remote changes cannot be listed.
        """
        logger.info("First sync: pulling every remote record")
        result = Puller(self._store, client, self._records).pull(config, cancel_event)
        if result.error:
            return result
        queued = self.queue_existing_records(skip=result.settled)
        logger.info(
            "First sync: %d downloaded, %d conflicts, %d local records queued for upload",
            result.applied,
            result.conflicts,
            queued,
        )
        return result

    def queue_existing_records(
        self, skip: Iterable[tuple[str, str]] = ()
    ) -> int:
        """Queue a create for every local row that has no queue entry.

        Args:
            skip: (table, record id) pairs to leave alone.

        Returns:
            Number of entries queued.
        """
        settled = set(skip)
        queued = 0
        for table_name in SYNC_ORDER:
            record_ids = self._records.list_record_ids(table_name)
            if not record_ids:
                continue
            known = self._store.queued_record_ids(table_name)
            table_queued = 0
            for record_id in record_ids:
                if record_id in known or (table_name, record_id) in settled:
                    continue
                record = self._records.get_record(table_name, record_id)
                if record is None:
                    continue
                self._store.enqueue(table_name, record_id, ChangeType.CREATE, record)
                table_queued += 1
            if table_queued:
                logger.info(
                    "Queued %d of %d existing %s records", table_queued, len(record_ids), table_name
                )
            queued += table_queued
        return queued
