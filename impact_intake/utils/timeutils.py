"""
Timestamp helpers.

All timestamps handled by the pipeline are timezone-aware UTC.
"""

from collections.abc import Callable
from datetime import date, datetime, time, timezone
from typing import Any

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a date-like value into an aware datetime.

    Accepts datetime, date and ISO 8601 strings (a trailing "Z" is allowed).
    Returns None for empty or unparseable input instead of raising.

    Examples:
        >>> parse_datetime("2025-08-31").isoformat()
        '2025-08-31T00:00:00+00:00'
        >>> parse_datetime("not a date") is None
        True
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        return None
