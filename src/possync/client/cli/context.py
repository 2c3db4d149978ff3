"""Shared state of a CLI invocation.

The transport is picked once from the global --url option: a running control
server over HTTP, or the database opened in-process.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click

from possync.client.cli.config import get_db_path
from possync.client.state import QueueStore
from possync.client.transport import HttpTransport, LocalTransport, SyncServiceClient
from possync.server.schemas import Envelope


class CliContext:
    """Lazily built service client for the commands."""

    def __init__(self, url: str | None = None, db_path: Path | None = None) -> None:
        self.url = url
        self.db_path = db_path
        self._client: SyncServiceClient | None = None
        self._store: QueueStore | None = None

    @property
    def is_remote(self) -> bool:
        return self.url is not None

    def client(self) -> SyncServiceClient:
        """Get the service client, building it on first use."""
        if self._client is None:
            if self.url:
                self._client = SyncServiceClient(HttpTransport(self.url))
            else:
                from possync.server.app import build_service

                api, _ = build_service(self.db_path or get_db_path())
                self._store = api.engine.store
                self._client = SyncServiceClient(LocalTransport(api))
        return self._client

    def store(self) -> QueueStore:
        """Get the queue store (local mode only)."""
        if self.url:
            raise click.UsageError("This command needs direct database access; drop --url.")
        if self._store is None:
            self._store = QueueStore(self.db_path or get_db_path())
        return self._store

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        if self._store is not None:
            self._store.close()


pass_context = click.make_pass_decorator(CliContext)


def unwrap(envelope: Envelope[Any]) -> Any:
    """Return the envelope data, or print the error and exit."""
    if not envelope.success:
        click.echo(f"Error: {envelope.error}", err=True)
        sys.exit(1)
    return envelope.data
