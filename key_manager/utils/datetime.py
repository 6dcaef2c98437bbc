"""Datetime helpers.

Timestamps are stored as naive UTC datetimes. Everything entering the
system goes through ``to_naive_utc`` so comparisons never mix aware and
naive values.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize a datetime to naive UTC.

    Aware datetimes are converted to UTC first; naive ones are assumed to
    already be UTC.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 string (or pass a datetime through) as naive UTC.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not an ISO-8601 timestamp: {value!r}")
    return to_naive_utc(datetime.fromisoformat(value.strip()))
