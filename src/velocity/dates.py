"""Timestamp helpers shared by extraction and metrics calculation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

DateLike = Union[datetime, str]


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO8601 timestamp into a timezone-aware datetime.

    The recorded UTC offset is preserved; naive values and date-only strings
    are interpreted as UTC. Returns ``None`` for empty or unparseable input.
    """
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime) -> str:
    """Format a datetime as ISO8601, using ``Z`` for UTC values."""
    return value.isoformat().replace("+00:00", "Z")


def format_date(value: datetime) -> str:
    """Format the calendar date of ``value`` in its own offset as ``YYYY-MM-DD``."""
    return value.date().isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_ago(days: int, reference: Optional[datetime] = None) -> datetime:
    """Return the instant ``days`` days before ``reference`` (default: now)."""
    return (reference or utc_now()) - timedelta(days=days)


def get_date_range(days: int, reference: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return ``(start, end)`` covering the last ``days`` days up to ``reference``."""
    end = reference or utc_now()
    return days_ago(days, end), end


def _coerce(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid timestamp: {value!r}")
    return parsed


def is_within_range(value: DateLike, start: datetime, end: datetime) -> bool:
    """Check whether ``value`` falls in the inclusive range ``[start, end]``."""
    return start <= _coerce(value) <= end


def diff_in_hours(start: DateLike, end: DateLike) -> float:
    """Return the signed number of hours from ``start`` to ``end``."""
    return (_coerce(end) - _coerce(start)).total_seconds() / 3600.0

