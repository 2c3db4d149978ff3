"""Access to the application's own tables for applying remote changes.

This module provides:
- RecordStore: Protocol the puller writes through
- SQLiteRecordStore: RecordStore over the local SQLite database
- RecordStoreError: A remote change cannot be applied locally
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from typing import Any, Protocol

from possync.client.state import validate_table_name
from possync.core.naming import snake_case_keys

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """A record cannot be read or written locally."""


class RecordStore(Protocol):
    """Local tables as seen by the puller."""

    def list_record_ids(self, table_name: str) -> list[str]:
        """Ids of the local records of a table, empty if the table is missing."""
        ...

    def get_record(self, table_name: str, record_id: str) -> dict[str, Any] | None:
        """Return the local record, or None if it does not exist."""
        ...

    def upsert_record(self, table_name: str, record_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a local record."""
        ...

    def soft_delete_record(self, table_name: str, record_id: str, deleted_at: str) -> bool:
        """Mark a local record as deleted. Returns False if it does not exist."""
        ...


class SQLiteRecordStore:
    """RecordStore writing straight into the POS database.

    Only columns that exist in the local table are written; remote-only
    columns are dropped. Nested values are stored as JSON text.
    """

    def __init__(self, conn: sqlite3.Connection, lock: threading.RLock | None = None) -> None:
        """Initialize the record store.

        Args:
            conn: Connection to the database holding the application tables.
            lock: Lock shared with other users of the connection.
        """
        self._conn = conn
        self._lock = lock or threading.RLock()
        self._columns: dict[str, tuple[str, ...]] = {}

    def _table_columns(self, table_name: str) -> tuple[str, ...]:
        validate_table_name(table_name)
        if table_name not in self._columns:
            with self._lock:
                rows = self._conn.execute(f"PRAGMA table_info({table_name})").fetchall()
            # Not cached when empty: the table may be created later
            columns = tuple(row[1] for row in rows)
            if not columns:
                return columns
            self._columns[table_name] = columns
        return self._columns[table_name]

    def list_record_ids(self, table_name: str) -> list[str]:
        if not self._table_columns(table_name):
            return []
        with self._lock:
            rows = self._conn.execute(
                f"SELECT id FROM {table_name} ORDER BY rowid"
            ).fetchall()
        return [str(row[0]) for row in rows]

    def get_record(self, table_name: str, record_id: str) -> dict[str, Any] | None:
        if not self._table_columns(table_name):
            return None
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT * FROM {table_name} WHERE id = ?", (record_id,)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            names = [description[0] for description in cursor.description]
        return dict(zip(names, row, strict=True))

    def upsert_record(self, table_name: str, record_id: str, data: dict[str, Any]) -> None:
        """Write a remote record over the local one.

        Raises:
            RecordStoreError: If the table does not exist locally or the
                write is rejected by SQLite.
        """
        columns = self._table_columns(table_name)
        if not columns:
            raise RecordStoreError(f"Local table {table_name} does not exist")

        row = snake_case_keys(data)
        row["id"] = record_id
        names = [name for name in row if name in columns]
        values = [_to_sql_value(row[name]) for name in names]

        updates = ", ".join(f"{name} = excluded.{name}" for name in names if name != "id")
        conflict = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
        query = (
            f"INSERT INTO {table_name} ({', '.join(names)}) "
            f"VALUES ({', '.join('?' for _ in names)}) "
            f"ON CONFLICT (id) {conflict}"
        )
        try:
            with self._lock:
                self._conn.execute(query, values)
        except sqlite3.Error as e:
            raise RecordStoreError(
                f"Cannot write {table_name}:{record_id}: {e}"
            ) from e
        logger.debug("Applied remote %s:%s", table_name, record_id)

    def soft_delete_record(self, table_name: str, record_id: str, deleted_at: str) -> bool:
        """Set deleted_at on a local record.

        Tables without a deleted_at column lose the row instead.
        """
        columns = self._table_columns(table_name)
        if not columns:
            return False
        try:
            with self._lock:
                if "deleted_at" in columns:
                    cursor = self._conn.execute(
                        f"UPDATE {table_name} SET deleted_at = ? WHERE id = ?",
                        (deleted_at, record_id),
                    )
                else:
                    cursor = self._conn.execute(
                        f"DELETE FROM {table_name} WHERE id = ?", (record_id,)
                    )
        except sqlite3.Error as e:
            raise RecordStoreError(
                f"Cannot delete {table_name}:{record_id}: {e}"
            ) from e
        return cursor.rowcount > 0


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value
