"""
Datetime utility functions for handling timezone-aware datetimes.
"""
import math
from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    Session code takes the current time from this function (or an injected
    clock defaulting to it) so that tests can control time.

    Returns:
        A timezone-aware datetime object representing the current time in UTC.

    Example:
        >>> from exam_engine.core.datetime_utils import utc_now
        >>> current_time = utc_now()
        >>> current_time.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Ensure a datetime object is timezone-aware (UTC).
    SQLite and hand-written catalog documents may carry naive datetimes.

    Args:
        dt: The datetime to ensure is timezone-aware

    Returns:
        A timezone-aware datetime object in UTC

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("datetime cannot be None")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string (or pass through a datetime) as an aware UTC datetime.

    A trailing "Z" is accepted. Returns None for None or an empty string.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_timezone_aware(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_timezone_aware(datetime.fromisoformat(text))


def elapsed_whole_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds elapsed from start to end, floored (negative if end < start)."""
    delta = ensure_timezone_aware(end) - ensure_timezone_aware(start)
    return math.floor(delta.total_seconds())
