"""Timestamp helpers.

Timestamps are persisted as ISO-8601 UTC strings with microsecond precision,
so lexicographic comparison in SQL matches chronological order.
"""

from collections.abc import Callable
from datetime import UTC, datetime


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(UTC)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (naive values are assumed to be UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso(dt: datetime | None) -> str | None:
    """Serialize a datetime for storage."""
    if dt is None:
        return None
    return ensure_utc_aware(dt).isoformat(timespec="microseconds")


def from_iso(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp. Empty strings count as missing."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc_aware(value)
    return ensure_utc_aware(datetime.fromisoformat(value))
