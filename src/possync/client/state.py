"""Local state management for the sync engine.

This module provides:
- QueueStore: SQLite-based queue of local mutations awaiting push
- QueueEntry: One queued mutation
- SyncConfig: The single-row sync configuration
- ConflictRecord: A remote change held back for manual resolution

Architecture:
    The business layer enqueues a mutation whenever a syncable row changes.
    The drainer moves entries pending -> synced or pending -> error, the
    retry selector moves error -> pending. Nothing else writes the queue
    apart from the explicit clear and reset control operations.

    Timestamps are epoch seconds (REAL) so that age filters are plain
    numeric comparisons; they are rendered as ISO-8601 for callers.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from possync.core.config import CloudConfig
from possync.core.timestamps import to_epoch, to_iso
from possync.core.types import (
    EXCLUDED_TABLES,
    SYNCABLE_TABLES,
    ChangeType,
    CloudProvider,
    ConflictStrategy,
    SyncStatus,
)

logger = logging.getLogger(__name__)

# Fields that update_config() is allowed to change
CONFIG_FIELDS = (
    "sync_enabled",
    "sync_interval_minutes",
    "cloud_provider",
    "cloud_url",
    "api_key",
    "table_prefix",
    "conflict_resolution_strategy",
)

# Placeholder the UI shows instead of the real key
MASKED_API_KEY = "***"
MIN_API_KEY_LENGTH = 10


def validate_table_name(table_name: str) -> None:
    """Check that a table may be synchronized.

    Raises:
        ValueError: If the name is empty, excluded, or not syncable.
    """
    if not table_name or not isinstance(table_name, str):
        raise ValueError("Invalid table name: must be a non-empty string")
    if table_name in EXCLUDED_TABLES:
        raise ValueError(f"Table {table_name} is excluded from sync")
    if table_name not in SYNCABLE_TABLES:
        raise ValueError(f"Table {table_name} is not a syncable table")


@dataclass
class QueueEntry:
    """A mutation waiting to be pushed (or already pushed).

    Attributes:
        id: Queue identifier assigned at enqueue time.
        table_name: Target table (the entity type).
        record_id: Primary key of the local record.
        change_type: create, update or delete.
        data: Snapshot of the record, None if absent or unreadable.
        sync_status: pending, synced or error.
        retry_count: Number of retry promotions so far.
        error_message: Last failure, None once promoted or synced.
        created_at: Enqueue time (epoch seconds).
        synced_at: Time of the successful push.
        last_attempt_at: Time of the last push attempt.
        parse_error: True if the stored JSON could not be decoded.
    """

    id: int
    table_name: str
    record_id: str
    change_type: ChangeType
    data: dict[str, Any] | None
    sync_status: SyncStatus
    retry_count: int
    error_message: str | None
    created_at: float
    synced_at: float | None = None
    last_attempt_at: float | None = None
    parse_error: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> QueueEntry:
        """Create QueueEntry from database row."""
        data = None
        parse_error = False
        if row["data"]:
            try:
                data = json.loads(row["data"])
            except json.JSONDecodeError:
                logger.error("Invalid JSON in queue item %s", row["id"])
                parse_error = True
        return cls(
            id=row["id"],
            table_name=row["table_name"],
            record_id=row["record_id"],
            change_type=ChangeType(row["change_type"]),
            data=data,
            sync_status=SyncStatus(row["sync_status"]),
            retry_count=row["retry_count"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            synced_at=row["synced_at"],
            last_attempt_at=row["last_attempt_at"],
            parse_error=parse_error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the row shape exposed to callers."""
        result: dict[str, Any] = {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "change_type": self.change_type.value,
            "data": self.data,
            "sync_status": self.sync_status.value,
            "retry_count": self.retry_count,
            "error_message": self.error_message,
            "created_at": to_iso(self.created_at),
            "synced_at": to_iso(self.synced_at),
            "last_attempt_at": to_iso(self.last_attempt_at),
        }
        if self.parse_error:
            result["parseError"] = True
        return result


@dataclass
class SyncConfig:
    """Process-wide sync configuration (single row)."""

    device_id: str
    sync_enabled: bool = False
    sync_interval_minutes: int = 5
    cloud_provider: CloudProvider = CloudProvider.SUPABASE
    cloud_url: str | None = None
    api_key: str | None = None
    table_prefix: str = ""
    conflict_resolution_strategy: ConflictStrategy = ConflictStrategy.SERVER_WINS
    last_sync_at: str | None = None
    last_push_at: float | None = None
    updated_at: float | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SyncConfig:
        """Create SyncConfig from database row."""
        return cls(
            device_id=row["device_id"],
            sync_enabled=bool(row["sync_enabled"]),
            sync_interval_minutes=row["sync_interval_minutes"],
            cloud_provider=CloudProvider(row["cloud_provider"]),
            cloud_url=row["cloud_url"],
            api_key=row["api_key"],
            table_prefix=row["table_prefix"] or "",
            conflict_resolution_strategy=ConflictStrategy(
                row["conflict_resolution_strategy"]
            ),
            last_sync_at=row["last_sync_at"],
            last_push_at=row["last_push_at"],
            updated_at=row["updated_at"],
        )

    @property
    def is_configured(self) -> bool:
        """True when a cloud URL and API key are set."""
        return bool(self.cloud_url and self.api_key)

    @property
    def last_activity_at(self) -> str | None:
        """Latest of the pull watermark and the last successful push (ISO-8601)."""
        pushed = to_iso(self.last_push_at)
        if not self.last_sync_at:
            return pushed
        if self.last_push_at is None:
            return self.last_sync_at
        try:
            pulled = to_epoch(self.last_sync_at)
        except ValueError:
            return pushed
        return self.last_sync_at if pulled >= self.last_push_at else pushed

    def to_cloud_config(self, timeout: float = 30.0) -> CloudConfig:
        """Build connection settings for the cloud client.

        Raises:
            ValueError: If the cloud URL or API key is missing.
        """
        if not self.cloud_url or not self.api_key:
            raise ValueError("Cloud URL and API key required")
        return CloudConfig(
            cloud_url=self.cloud_url,
            api_key=self.api_key,
            provider=self.cloud_provider,
            table_prefix=self.table_prefix,
            timeout=timeout,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the shape exposed by getConfig."""
        return {
            "sync_enabled": self.sync_enabled,
            "sync_interval_minutes": self.sync_interval_minutes,
            "cloud_provider": self.cloud_provider.value,
            "cloud_url": self.cloud_url,
            "api_key": self.api_key,
            "table_prefix": self.table_prefix,
            "conflict_resolution_strategy": self.conflict_resolution_strategy.value,
            "device_id": self.device_id,
            "last_sync_at": self.last_sync_at,
            "last_push_at": to_iso(self.last_push_at),
        }


@dataclass
class ConflictRecord:
    """A remote change withheld under the manual strategy."""

    id: int
    table_name: str
    record_id: str
    change_type: ChangeType
    local_data: dict[str, Any] | None
    remote_data: dict[str, Any] | None
    server_updated_at: str | None
    detected_at: float
    resolved: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ConflictRecord:
        """Create ConflictRecord from database row."""
        return cls(
            id=row["id"],
            table_name=row["table_name"],
            record_id=row["record_id"],
            change_type=ChangeType(row["change_type"]),
            local_data=json.loads(row["local_data"]) if row["local_data"] else None,
            remote_data=json.loads(row["remote_data"]) if row["remote_data"] else None,
            server_updated_at=row["server_updated_at"],
            detected_at=row["detected_at"],
            resolved=bool(row["resolved"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the shape exposed by getConflicts."""
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "change_type": self.change_type.value,
            "local": self.local_data,
            "remote": self.remote_data,
            "server_updated_at": self.server_updated_at,
            "detected_at": to_iso(self.detected_at),
            "resolved": self.resolved,
        }


@dataclass
class StatusCounts:
    """Number of queue entries per status."""

    pending: int = 0
    synced: int = 0
    error: int = 0

    @property
    def total(self) -> int:
        """Total number of entries."""
        return self.pending + self.synced + self.error


class QueueStore:
    """SQLite-based sync queue and configuration.

    Thread-safe: every statement runs under a re-entrant lock. The engine's
    pass lock guarantees that only one pass mutates entry statuses at a time.
    """

    def __init__(
        self,
        db_path: Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the queue database.

        Args:
            db_path: Path to SQLite database file.
            clock: Source of the current time in epoch seconds.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sync_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                table_name TEXT NOT NULL,
                record_id TEXT NOT NULL,
                change_type TEXT NOT NULL
                    CHECK (change_type IN ('create', 'update', 'delete')),
                data TEXT,
                sync_status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (sync_status IN ('pending', 'synced', 'error')),
                error_message TEXT,
                retry_count INTEGER NOT NULL DEFAULT 0,
                created_at REAL NOT NULL,
                synced_at REAL,
                last_attempt_at REAL,
                UNIQUE (table_name, record_id, change_type)
            );

            CREATE INDEX IF NOT EXISTS idx_sync_queue_status
                ON sync_queue (sync_status, created_at);

            CREATE INDEX IF NOT EXISTS idx_sync_queue_table_record
                ON sync_queue (table_name, record_id);

            CREATE TABLE IF NOT EXISTS sync_metadata (
                id INTEGER PRIMARY KEY DEFAULT 1 CHECK (id = 1),
                sync_enabled INTEGER NOT NULL DEFAULT 0,
                sync_interval_minutes INTEGER NOT NULL DEFAULT 5,
                cloud_provider TEXT NOT NULL DEFAULT 'supabase',
                cloud_url TEXT,
                api_key TEXT,
                table_prefix TEXT NOT NULL DEFAULT '',
                conflict_resolution_strategy TEXT NOT NULL DEFAULT 'server_wins'
                    CHECK (conflict_resolution_strategy IN
                        ('server_wins', 'client_wins', 'manual')),
                device_id TEXT NOT NULL,
                last_sync_at TEXT,
                last_push_at REAL,
                sync_lock_expires_at REAL,
                updated_at REAL
            );

            CREATE TABLE IF NOT EXISTS sync_conflicts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                table_name TEXT NOT NULL,
                record_id TEXT NOT NULL,
                change_type TEXT NOT NULL,
                local_data TEXT,
                remote_data TEXT,
                server_updated_at TEXT,
                detected_at REAL NOT NULL,
                resolved INTEGER NOT NULL DEFAULT 0
            );
        """)

    @property
    def connection(self) -> sqlite3.Connection:
        """Underlying connection, shared with the local record store."""
        return self._conn

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding the connection."""
        return self._lock

    def now(self) -> float:
        """Current time according to the store clock."""
        return self._clock()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Queue operations ===

    def enqueue(
        self,
        table_name: str,
        record_id: str | int,
        change_type: ChangeType | str,
        data: dict[str, Any] | None = None,
    ) -> QueueEntry:
        """Record a local mutation for pushing.

        An existing entry for the same (table, record, change type) is
        refreshed: new payload, back to pending, retry budget restored.

        Raises:
            ValueError: On an invalid table, record id or change type.
        """
        validate_table_name(table_name)
        record_id = str(record_id) if record_id is not None else ""
        if not record_id:
            raise ValueError("Invalid record ID: must be a non-empty string")
        change_type = ChangeType(change_type)
        payload = json.dumps(data) if data is not None else None

        with self._lock:
            self._conn.execute(
                """
                INSERT INTO sync_queue (
                    table_name, record_id, change_type, data, sync_status,
                    retry_count, created_at
                ) VALUES (?, ?, ?, ?, 'pending', 0, ?)
                ON CONFLICT (table_name, record_id, change_type) DO UPDATE SET
                    data = excluded.data,
                    sync_status = 'pending',
                    retry_count = 0,
                    error_message = NULL,
                    created_at = excluded.created_at,
                    synced_at = NULL,
                    last_attempt_at = NULL
                """,
                (table_name, record_id, change_type.value, payload, self._clock()),
            )
            row = self._conn.execute(
                """
                SELECT * FROM sync_queue
                WHERE table_name = ? AND record_id = ? AND change_type = ?
                """,
                (table_name, record_id, change_type.value),
            ).fetchone()
        return QueueEntry.from_row(row)

    def get_entry(self, entry_id: int) -> QueueEntry | None:
        """Get a queue entry by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sync_queue WHERE id = ?", (entry_id,)
            ).fetchone()
        return QueueEntry.from_row(row) if row else None

    def list_pending(self, limit: int | None = None) -> list[QueueEntry]:
        """List pending entries, oldest first.

        Args:
            limit: Maximum number of entries (None = all).
        """
        query = (
            "SELECT * FROM sync_queue WHERE sync_status = 'pending' "
            "ORDER BY created_at ASC, id ASC"
        )
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [QueueEntry.from_row(row) for row in rows]

    def list_entries(
        self,
        status: SyncStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[QueueEntry]:
        """List queue entries, newest first, optionally filtered by status."""
        query = "SELECT * FROM sync_queue"
        params: list[Any] = []
        if status:
            query += " WHERE sync_status = ?"
            params.append(SyncStatus(status).value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [QueueEntry.from_row(row) for row in rows]

    def mark_synced(self, entry_id: int) -> None:
        """Mark an entry as pushed."""
        now = self._clock()
        with self._lock:
            self._conn.execute(
                """
                UPDATE sync_queue
                SET sync_status = 'synced', error_message = NULL,
                    synced_at = ?, last_attempt_at = ?
                WHERE id = ?
                """,
                (now, now, entry_id),
            )

    def mark_error(self, entry_id: int, error_message: str) -> None:
        """Mark an entry as failed.

        The retry count is left alone; it only grows on promotion.
        """
        with self._lock:
            self._conn.execute(
                """
                UPDATE sync_queue
                SET sync_status = 'error', error_message = ?, last_attempt_at = ?
                WHERE id = ?
                """,
                (error_message, self._clock(), entry_id),
            )

    def promote_errors(self, max_retries: int, created_after: float) -> int:
        """Move retry-eligible errors back to pending.

        Args:
            max_retries: Entries at or above this retry count stay in error.
            created_after: Entries enqueued at or before this time stay in error.

        Returns:
            Number of entries promoted.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE sync_queue
                SET sync_status = 'pending',
                    error_message = NULL,
                    retry_count = retry_count + 1
                WHERE sync_status = 'error'
                  AND retry_count < ?
                  AND created_at > ?
                """,
                (max_retries, created_after),
            )
        return cursor.rowcount

    def reset_failed(self, item_ids: Iterable[int] | None = None) -> int:
        """Reset failed entries for an operator-triggered retry.

        Args:
            item_ids: Only reset these entries (None = every failed entry).

        Returns:
            Number of entries reset.
        """
        query = (
            "UPDATE sync_queue SET sync_status = 'pending', error_message = NULL, "
            "retry_count = 0 WHERE sync_status = 'error'"
        )
        params: list[Any] = []
        if item_ids is not None:
            ids = list(item_ids)
            if not ids:
                return 0
            query += f" AND id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        with self._lock:
            cursor = self._conn.execute(query, params)
        return cursor.rowcount

    def clear(self, status: SyncStatus | str | None = None) -> int:
        """Delete queue entries, optionally only those with a given status."""
        with self._lock:
            if status:
                cursor = self._conn.execute(
                    "DELETE FROM sync_queue WHERE sync_status = ?",
                    (SyncStatus(status).value,),
                )
            else:
                cursor = self._conn.execute("DELETE FROM sync_queue")
        return cursor.rowcount

    def has_local_changes(self, table_name: str, record_id: str) -> bool:
        """Check for unpushed (pending or failed) mutations of a record."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT COUNT(*) AS count FROM sync_queue
                WHERE table_name = ? AND record_id = ?
                  AND sync_status IN ('pending', 'error')
                """,
                (table_name, str(record_id)),
            ).fetchone()
        return bool(row["count"])

    def last_pushed_entry(self, table_name: str, record_id: str) -> QueueEntry | None:
        """Most recently pushed entry of a record, None if it was never pushed."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT * FROM sync_queue
                WHERE table_name = ? AND record_id = ? AND sync_status = 'synced'
                ORDER BY synced_at DESC, id DESC
                LIMIT 1
                """,
                (table_name, str(record_id)),
            ).fetchone()
        return QueueEntry.from_row(row) if row else None

    def queued_record_ids(self, table_name: str) -> set[str]:
        """Ids of the records of a table that have any queue entry."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT record_id FROM sync_queue WHERE table_name = ?",
                (table_name,),
            ).fetchall()
        return {row["record_id"] for row in rows}

    # === Metrics ===

    def count_by_status(self) -> StatusCounts:
        """Count entries per status."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT sync_status, COUNT(*) AS count FROM sync_queue "
                "GROUP BY sync_status"
            ).fetchall()
        by_status = {row["sync_status"]: row["count"] for row in rows}
        return StatusCounts(
            pending=by_status.get(SyncStatus.PENDING.value, 0),
            synced=by_status.get(SyncStatus.SYNCED.value, 0),
            error=by_status.get(SyncStatus.ERROR.value, 0),
        )

    def count_stuck(self, created_before: float) -> int:
        """Count pending entries enqueued before a given time."""
        return self._count(
            "sync_status = 'pending' AND created_at < ?", (created_before,)
        )

    def count_high_retry(self, threshold: int) -> int:
        """Count failed entries that were already retried `threshold` times."""
        return self._count(
            "sync_status = 'error' AND retry_count >= ?", (threshold,)
        )

    def count_recent_errors(self, since: float) -> int:
        """Count failed entries whose last attempt happened after `since`."""
        return self._count(
            "sync_status = 'error' AND COALESCE(last_attempt_at, created_at) > ?",
            (since,),
        )

    def _count(self, where: str, params: tuple[Any, ...]) -> int:
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) AS count FROM sync_queue WHERE {where}", params
            ).fetchone()
        return int(row["count"])

    # === Configuration ===

    def get_config(self) -> SyncConfig:
        """Get the sync configuration, creating defaults on first use."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sync_metadata WHERE id = 1"
            ).fetchone()
            if row is None:
                device_id = str(uuid.uuid4())
                self._conn.execute(
                    "INSERT INTO sync_metadata (id, device_id, updated_at) "
                    "VALUES (1, ?, ?)",
                    (device_id, self._clock()),
                )
                logger.info("Initialized sync configuration for device %s", device_id)
                row = self._conn.execute(
                    "SELECT * FROM sync_metadata WHERE id = 1"
                ).fetchone()
        return SyncConfig.from_row(row)

    def update_config(self, updates: dict[str, Any]) -> SyncConfig:
        """Update configuration fields.

        Unknown fields are ignored. An empty, masked or too short API key is
        ignored so that a masked value never overwrites the stored key.

        Raises:
            ValueError: If no valid field remains or a value is invalid.
        """
        self.get_config()  # Ensure the row exists

        assignments: list[str] = []
        values: list[Any] = []
        for key, value in updates.items():
            if key not in CONFIG_FIELDS:
                continue
            if key == "api_key":
                if (
                    not value
                    or value == MASKED_API_KEY
                    or len(str(value).strip()) <= MIN_API_KEY_LENGTH
                ):
                    continue
                value = str(value).strip()
            assignments.append(f"{key} = ?")
            values.append(_normalize_config_value(key, value))

        if not assignments:
            raise ValueError("No valid fields to update")

        assignments.append("updated_at = ?")
        values.append(self._clock())
        with self._lock:
            self._conn.execute(
                f"UPDATE sync_metadata SET {', '.join(assignments)} WHERE id = 1",
                values,
            )
        return self.get_config()

    def set_last_sync_at(self, timestamp: str) -> None:
        """Store the sync watermark (ISO-8601)."""
        self.get_config()
        with self._lock:
            self._conn.execute(
                "UPDATE sync_metadata SET last_sync_at = ?, updated_at = ? WHERE id = 1",
                (timestamp, self._clock()),
            )

    def set_last_push_at(self, timestamp: float) -> None:
        """Store the time of the last push pass that delivered something."""
        self.get_config()
        with self._lock:
            self._conn.execute(
                "UPDATE sync_metadata SET last_push_at = ?, updated_at = ? WHERE id = 1",
                (timestamp, self._clock()),
            )

    # === Cross-process lock ===

    def acquire_lock(self, timeout: float) -> bool:
        """Take the database-level sync lock.

        An expired lock (left by a crashed process) is taken over.

        Args:
            timeout: Lock lifetime in seconds.

        Returns:
            True if the lock was acquired.
        """
        self.get_config()
        now = self._clock()
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT sync_lock_expires_at FROM sync_metadata WHERE id = 1"
                ).fetchone()
                expires_at = row["sync_lock_expires_at"]
                if expires_at is not None and expires_at > now:
                    self._conn.execute("ROLLBACK")
                    return False
                if expires_at is not None:
                    logger.warning("Sync lock expired, taking it over")
                self._conn.execute(
                    "UPDATE sync_metadata SET sync_lock_expires_at = ? WHERE id = 1",
                    (now + timeout,),
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
        return True

    def release_lock(self) -> None:
        """Release the database-level sync lock."""
        with self._lock:
            self._conn.execute(
                "UPDATE sync_metadata SET sync_lock_expires_at = NULL WHERE id = 1"
            )

    def is_lock_held(self) -> bool:
        """Check whether an unexpired database lock exists."""
        with self._lock:
            row = self._conn.execute(
                "SELECT sync_lock_expires_at FROM sync_metadata WHERE id = 1"
            ).fetchone()
        if row is None or row["sync_lock_expires_at"] is None:
            return False
        return bool(row["sync_lock_expires_at"] > self._clock())

    # === Conflicts ===

    def record_conflict(
        self,
        table_name: str,
        record_id: str,
        change_type: ChangeType,
        local_data: dict[str, Any] | None,
        remote_data: dict[str, Any] | None,
        server_updated_at: str | None,
    ) -> ConflictRecord:
        """Store a conflict for manual resolution."""
        with self._lock:
            cursor = self._conn.execute(
                """
                INSERT INTO sync_conflicts (
                    table_name, record_id, change_type, local_data, remote_data,
                    server_updated_at, detected_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    table_name,
                    str(record_id),
                    ChangeType(change_type).value,
                    json.dumps(local_data, default=str) if local_data is not None else None,
                    json.dumps(remote_data, default=str) if remote_data is not None else None,
                    server_updated_at,
                    self._clock(),
                ),
            )
            row = self._conn.execute(
                "SELECT * FROM sync_conflicts WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return ConflictRecord.from_row(row)

    def list_conflicts(self, include_resolved: bool = False) -> list[ConflictRecord]:
        """List recorded conflicts, newest first."""
        query = "SELECT * FROM sync_conflicts"
        if not include_resolved:
            query += " WHERE resolved = 0"
        query += " ORDER BY detected_at DESC, id DESC"
        with self._lock:
            rows = self._conn.execute(query).fetchall()
        return [ConflictRecord.from_row(row) for row in rows]

    def get_conflict(self, conflict_id: int) -> ConflictRecord | None:
        """Get a recorded conflict by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sync_conflicts WHERE id = ?", (conflict_id,)
            ).fetchone()
        return ConflictRecord.from_row(row) if row else None

    def resolve_conflict(self, conflict_id: int) -> bool:
        """Flag a conflict as resolved."""
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE sync_conflicts SET resolved = 1 WHERE id = ?", (conflict_id,)
            )
        return cursor.rowcount > 0


def _normalize_config_value(key: str, value: Any) -> Any:
    """Validate and convert a configuration value for storage.

    Raises:
        ValueError: If the value is invalid for the field.
    """
    if key == "sync_enabled":
        return 1 if value else 0
    if key == "sync_interval_minutes":
        interval = int(value)
        if interval <= 0:
            raise ValueError("sync_interval_minutes must be positive")
        return interval
    if key == "cloud_provider":
        return CloudProvider(value).value
    if key == "conflict_resolution_strategy":
        return ConflictStrategy(value).value
    if key == "cloud_url":
        return str(value).rstrip("/") if value else None
    if key == "table_prefix":
        return str(value or "")
    return value
