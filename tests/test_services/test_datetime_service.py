"""Tests for datetime helpers."""

from datetime import datetime, timedelta, timezone

from blobtrail.services.datetime_service import format_iso, now_utc, parse_datetime, to_utc


class TestDatetimeParsing:
    def test_parse_full_format(self) -> None:
        result = parse_datetime("2026-02-02 22:21:29.975359+00")
        assert result.year == 2026
        assert result.month == 2
        assert result.day == 2
        assert result.hour == 22
        assert result.minute == 21

    def test_parse_date_only(self) -> None:
        result = parse_datetime("2026-02-02")
        assert result.day == 2
        assert result.hour == 0

    def test_parse_datetime_object(self) -> None:
        dt = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_datetime(dt) == dt

    def test_parse_datetime_naive_adds_tz(self) -> None:
        result = parse_datetime(datetime(2026, 1, 1, 12, 0), default_tz="UTC")
        assert result.tzinfo is not None


class TestToUtc:
    def test_none_passes_through(self) -> None:
        assert to_utc(None) is None

    def test_naive_values_are_utc(self) -> None:
        result = to_utc(datetime(2026, 1, 1, 12, 0))
        assert result == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert result is not None and result.utcoffset() == timedelta(0)

    def test_offsets_are_converted(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        result = to_utc(datetime(2026, 1, 1, 12, 0, tzinfo=plus_two))
        assert result is not None
        assert result.hour == 10
        assert result.utcoffset() == timedelta(0)


class TestFormatting:
    def test_format_iso(self) -> None:
        dt = datetime(2026, 2, 2, 22, 21, 29, tzinfo=timezone.utc)
        assert format_iso(dt) == "2026-02-02T22:21:29+00:00"

    def test_format_iso_naive_assumes_utc(self) -> None:
        assert format_iso(datetime(2026, 2, 2)).endswith("+00:00")

    def test_now_utc(self) -> None:
        assert now_utc().utcoffset() == timedelta(0)
