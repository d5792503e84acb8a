"""Datetime helpers: lax parsing and UTC normalisation for storage."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts ISO 8601 variants, ``YYYY-MM-DD HH:MM[:SS[.ffffff]][±TZ]`` and bare
    dates. Missing timezone defaults to default_tz. Naive datetime objects are
    interpreted in default_tz.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def to_utc(value: datetime | None) -> datetime | None:
    """Convert a datetime to UTC for storage. Naive values are assumed to be UTC.

    SQLite stores datetimes without an offset and hands them back naive, so
    everything written to the ledger is normalised to UTC first.
    """
    if value is None:
        return None
    return parse_datetime(value).astimezone(timezone.utc)


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON serialization."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()
