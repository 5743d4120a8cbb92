"""
Timestamp helpers.

CRITICAL: All datetimes must be timezone-aware (UTC) to prevent comparison bugs
between Firestore timestamps, mock DB snapshots and freshly created values.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse various timestamp formats to timezone-aware datetime (UTC).

    Accepts datetimes (naive values are assumed UTC), ISO strings with or without
    a trailing Z, and Firestore timestamp objects.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    # Firestore Timestamp / DatetimeWithNanoseconds interfaces
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
    if hasattr(value, "ToDatetime"):
        dt = value.ToDatetime()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    return None


def hours_since(value, now: Optional[datetime] = None) -> Optional[float]:
    """Elapsed hours between value and now, or None if value is not a timestamp."""
    created = parse_timestamp(value)
    if created is None:
        return None
    now = parse_timestamp(now) if now is not None else utcnow()
    return (now - created).total_seconds() / 3600
