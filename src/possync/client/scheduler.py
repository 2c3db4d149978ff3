"""Scheduler for automatic sync passes.

This module provides:
- AutoSyncScheduler: Runs a push pass then a pull pass every sync interval
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from possync.client.api import APIError
from possync.client.sync.types import SyncError, SyncLockedError

if TYPE_CHECKING:
    from possync.client.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

JOB_ID = "auto_sync"


class AutoSyncScheduler:
    """Periodic push and pull while sync is enabled.

    The job never overlaps itself and missed runs are coalesced. A tick that
    finds the engine busy (manual sync, other process) is skipped.
    """

    def __init__(self, engine: SyncEngine) -> None:
        """Initialize the scheduler.

        Args:
            engine: Engine to run the passes on.
        """
        self._engine = engine
        self._scheduler: BackgroundScheduler | None = None
        self._interval_minutes: int | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    @property
    def interval_minutes(self) -> int | None:
        """Interval of the scheduled job, None when stopped."""
        return self._interval_minutes

    def run_once(self) -> None:
        """Job function: one push pass followed by one pull pass."""
        config = self._engine.get_config()
        if not config.sync_enabled or not config.is_configured:
            logger.debug("Auto-sync skipped (disabled or not configured)")
            return

        try:
            result = self._engine.sync_all()
            if result.aborted:
                logger.warning("Auto-sync push aborted: %s", result.error)
                return
            pulled = self._engine.pull_changes()
            if pulled.error:
                logger.warning("Auto-sync pull failed: %s", pulled.error)
        except SyncLockedError:
            logger.info("Auto-sync skipped, a sync is already in progress")
        except (SyncError, APIError) as e:
            logger.warning("Auto-sync failed: %s", e)
        except Exception:
            logger.exception("Error during scheduled sync")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._interval_minutes = self._engine.get_config().sync_interval_minutes
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id=JOB_ID,
            name="Automatic sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Auto-sync scheduler started (every %d minutes)", self._interval_minutes)

    def reschedule(self) -> None:
        """Apply a changed sync interval to the running job."""
        if self._scheduler is None:
            return
        interval = self._engine.get_config().sync_interval_minutes
        if interval == self._interval_minutes:
            return
        self._scheduler.reschedule_job(JOB_ID, trigger=IntervalTrigger(minutes=interval))
        self._interval_minutes = interval
        logger.info("Auto-sync interval changed to %d minutes", interval)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self._interval_minutes = None
            logger.info("Auto-sync scheduler stopped")
