"""
Tolerant time and number coercion used by the engines.

Event payloads are telemetry-like: fields may be missing, null, strings or
garbage. Every helper here degrades to a caller-supplied default instead of
raising.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

MINUTES_PER_DAY = 60 * 24


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(value: Any, default: Optional[datetime] = None) -> Optional[datetime]:
    """
    Coerce a value into a timezone-aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), dates, ISO-8601
    strings (including a trailing ``Z``) and epoch seconds.

    Args:
        value: Candidate timestamp
        default: Returned when the value cannot be parsed

    Returns:
        Aware UTC datetime or ``default``
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return default
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return default
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return default
    else:
        return default

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Coerce to a finite float, returning ``default`` otherwise."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def day_key(moment: datetime) -> str:
    """ISO calendar date (UTC) used to bucket activity counts."""
    return moment.astimezone(timezone.utc).date().isoformat()


def diff_minutes(later: Optional[datetime], earlier: Optional[datetime]) -> float:
    """Non-negative minutes between two instants; 0 if either is missing."""
    if later is None or earlier is None:
        return 0.0
    return max(0.0, (later - earlier).total_seconds() / 60.0)


def diff_days(later: Optional[datetime], earlier: Optional[datetime]) -> float:
    return diff_minutes(later, earlier) / MINUTES_PER_DAY


def count_in_last_days(timestamps: list[datetime], now: datetime, days: int) -> int:
    """Count timestamps at or after ``now - days``."""
    cutoff = now - timedelta(days=days)
    return sum(1 for ts in timestamps if ts is not None and ts >= cutoff)
