"""FastAPI application for the local sync control server.

This module creates and configures the FastAPI application with:
- The control API (POST /api/sync/invoke) and read-only status routes
- The auto-sync scheduler, started and stopped with the application

Usage:
    uvicorn possync.server.app:app_factory --factory --port 8765
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from possync import __version__
from possync.client.scheduler import AutoSyncScheduler
from possync.client.state import QueueStore
from possync.client.sync.engine import SyncEngine
from possync.core.config import HealthThresholds, SyncPolicy
from possync.server.api.router import router as api_router
from possync.server.control import ControlAPI

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("POSSYNC_DB_PATH", "possync.db"))
LOG_PATH = Path(os.environ.get("POSSYNC_LOG_PATH", "possync-server.log"))

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path | None, level: int = logging.INFO) -> None:
    """Configure logging to output to both file and stdout.

    Calling it again does not add handlers twice.

    Args:
        log_path: Path to the log file (None = stdout only).
        level: Level of the possync loggers.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for possync
    root_logger = logging.getLogger("possync")
    root_logger.setLevel(level)
    if root_logger.handlers:
        return

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is None:
        return

    # File handler
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


def build_service(
    db_path: Path,
    policy: SyncPolicy | None = None,
    thresholds: HealthThresholds | None = None,
) -> tuple[ControlAPI, AutoSyncScheduler]:
    """Wire the queue store, engine, scheduler and control API.

    Args:
        db_path: SQLite database of the POS application.
        policy: Sync policy (defaults apply when None).
        thresholds: Health thresholds (defaults apply when None).

    Returns:
        The control API and the (not yet started) scheduler.
    """
    store = QueueStore(db_path)
    engine = SyncEngine(store, policy=policy, thresholds=thresholds)
    scheduler = AutoSyncScheduler(engine)
    return ControlAPI(engine, scheduler), scheduler


def create_app(
    control_api: ControlAPI,
    scheduler: AutoSyncScheduler | None = None,
) -> FastAPI:
    """Create FastAPI application around a control API.

    Args:
        control_api: Control API serving the requests.
        scheduler: Optional auto-sync scheduler run during the app lifetime.

    Returns:
        Configured FastAPI application.
    """
    engine = control_api.engine

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        config = engine.get_config()
        logger.info("=" * 60)
        logger.info("possync control server starting")
        logger.info("=" * 60)
        logger.info("  Device:    %s", config.device_id)
        logger.info("  Provider:  %s", config.cloud_provider.value)
        logger.info("  Enabled:   %s", config.sync_enabled)
        logger.info("  Interval:  %d min", config.sync_interval_minutes)
        logger.info("=" * 60)
        if scheduler is not None:
            scheduler.start()

        yield

        # Shutdown
        logger.info("possync control server shutting down")
        engine.cancel()
        if scheduler is not None:
            scheduler.stop()
        engine.store.close()

    application = FastAPI(
        title="possync",
        description="Sync service of the POS application",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.control_api = control_api
    application.state.scheduler = scheduler

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    control_api, scheduler = build_service(DB_PATH)
    return create_app(control_api, scheduler)
