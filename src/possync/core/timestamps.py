"""Timestamp helpers.

The queue stores epoch seconds; the cloud and the control API speak ISO-8601.
Naive values coming from SQLite's CURRENT_TIMESTAMP are taken as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime


def to_iso(timestamp: float | None) -> str | None:
    """Convert epoch seconds to an ISO-8601 UTC string."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, UTC).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Raises:
        ValueError: If the value is not a recognizable timestamp.
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_epoch(value: str) -> float:
    """Convert an ISO-8601 string to epoch seconds."""
    return parse_iso(value).timestamp()
