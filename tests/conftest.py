"""Shared pytest fixtures.

The cloud backend is replaced by an in-memory fake for engine-level tests;
HTTP-level behavior of the real clients is tested with pytest-httpx.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from possync.client.api import RemoteChange, UpsertResult
from possync.client.state import QueueStore
from possync.client.sync.engine import SyncEngine
from possync.core.config import CloudConfig, SyncPolicy

START_TIME = 1_750_000_000.0  # 2025-06-15T15:06:40+00:00


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCloudClient:
    """In-memory stand-in for a CloudClient.

    Attributes:
        attempts: (table, record_id, payload) of every upsert call, in order.
        failures: Exception to raise per record id.
        changes: Remote changes returned by get_changes().
        changes_error: Exception raised by get_changes().
        connection_error: Exception raised by test_connection().
        on_upsert: Hook called before each upsert.
        max_in_flight: Highest number of upserts running at the same time.
    """

    def __init__(self) -> None:
        self.attempts: list[tuple[str, str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.changes: list[RemoteChange] = []
        self.changes_error: Exception | None = None
        self.connection_error: Exception | None = None
        self.on_upsert: Callable[[str, str], None] | None = None
        self.since_values: list[str | None] = []
        self.configs: list[CloudConfig] = []
        self.closed = 0
        self.in_flight = 0
        self.max_in_flight = 0

    def upsert_record(self, table_name: str, record_id: str, data: dict[str, Any]) -> UpsertResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_upsert is not None:
                self.on_upsert(table_name, record_id)
            self.attempts.append((table_name, record_id, data))
            if record_id in self.failures:
                raise self.failures[record_id]
            return UpsertResult(remote_id=record_id)
        finally:
            self.in_flight -= 1

    def get_changes(self, since: str | None) -> list[RemoteChange]:
        self.since_values.append(since)
        if self.changes_error is not None:
            raise self.changes_error
        return list(self.changes)

    def test_connection(self) -> str:
        if self.connection_error is not None:
            raise self.connection_error
        return "Connection successful"

    def close(self) -> None:
        self.closed += 1

    def __enter__(self) -> FakeCloudClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def attempted_ids(self) -> list[str]:
        return [record_id for _, record_id, _ in self.attempts]


@pytest.fixture
def clock() -> FakeClock:
    """Clock shared by the store and the engine."""
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path, clock: FakeClock) -> Generator[QueueStore, None, None]:
    """Create a queue store on a temporary database."""
    s = QueueStore(tmp_path / "pos.db", clock=clock)
    yield s
    s.close()


@pytest.fixture
def configured_store(store: QueueStore) -> QueueStore:
    """Queue store with sync enabled and cloud credentials set."""
    store.update_config(
        {
            "sync_enabled": True,
            "cloud_url": "https://example.supabase.co",
            "api_key": "test-api-key-123",
        }
    )
    return store


@pytest.fixture
def customers_table(store: QueueStore) -> QueueStore:
    """Add a customers table to the POS database."""
    store.connection.execute(
        """
        CREATE TABLE customers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            phone TEXT,
            updated_at TEXT,
            deleted_at TEXT
        )
        """
    )
    return store


@pytest.fixture
def cloud() -> FakeCloudClient:
    """Fake cloud backend."""
    return FakeCloudClient()


@pytest.fixture
def policy() -> SyncPolicy:
    """Sync policy without pauses between items."""
    return SyncPolicy(rate_limit_delay=0.0)


@pytest.fixture
def engine(
    configured_store: QueueStore,
    cloud: FakeCloudClient,
    policy: SyncPolicy,
) -> SyncEngine:
    """Engine wired to the fake cloud backend."""

    def factory(config: CloudConfig) -> FakeCloudClient:
        cloud.configs.append(config)
        return cloud

    return SyncEngine(configured_store, policy=policy, client_factory=factory)
