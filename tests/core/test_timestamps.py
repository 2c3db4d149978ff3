"""Tests for timestamp helpers."""

from datetime import UTC, datetime

import pytest

from possync.core.timestamps import parse_iso, to_epoch, to_iso


class TestToIso:
    """Tests for epoch -> ISO-8601."""

    def test_none(self) -> None:
        assert to_iso(None) is None

    def test_epoch_seconds(self) -> None:
        assert to_iso(1_750_000_000.0) == "2025-06-15T15:06:40+00:00"


class TestParseIso:
    """Tests for ISO-8601 parsing."""

    def test_z_suffix(self) -> None:
        """A trailing Z means UTC."""
        assert parse_iso("2025-06-15T12:00:00Z") == datetime(2025, 6, 15, 12, tzinfo=UTC)

    def test_naive_is_utc(self) -> None:
        """SQLite CURRENT_TIMESTAMP values have no offset and are UTC."""
        assert parse_iso("2025-06-15 12:00:00") == datetime(2025, 6, 15, 12, tzinfo=UTC)

    def test_offset_converted_to_utc(self) -> None:
        parsed = parse_iso("2025-06-15T14:00:00+02:00")
        assert parsed == datetime(2025, 6, 15, 12, tzinfo=UTC)
        assert parsed.utcoffset() is not None

    def test_fractional_seconds(self) -> None:
        parsed = parse_iso("2025-06-15T12:00:00.123456+00:00")
        assert parsed.microsecond == 123456

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_iso("yesterday")


class TestToEpoch:
    """Tests for ISO-8601 -> epoch."""

    def test_round_trip_value(self) -> None:
        assert to_epoch("2025-06-15T15:06:40+00:00") == 1_750_000_000.0
