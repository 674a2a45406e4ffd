"""
Timestamp utilities for consistent time handling across the system.

All timestamps are timezone-aware UTC and serialized as ISO-8601 strings.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as an ISO-8601 UTC string.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (as stored) into an aware UTC datetime."""
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def hours_ago(hours: float, now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) - timedelta(hours=hours)


def days_ago(days: float, now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) - timedelta(days=days)


def time_ago(value: datetime, now: Optional[datetime] = None) -> str:
    """Render the age of a timestamp compactly, e.g. ``5m ago``.

    Args:
        value: Past timestamp
        now: Reference time (defaults to current UTC time)

    Returns:
        Age string in seconds, minutes, hours or days
    """
    seconds = max(0, int(((now or utc_now()) - value).total_seconds()))
    if seconds < 60:
        return f'{seconds}s ago'
    minutes = seconds // 60
    if minutes < 60:
        return f'{minutes}m ago'
    hours = minutes // 60
    if hours < 24:
        return f'{hours}h ago'
    return f'{hours // 24}d ago'
