# ============================================================================
# booking_engine/services/scheduling/time_utils.py
# Wall-clock parsing and the one overlap predicate used by every conflict check
# ============================================================================
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking_engine.core.exceptions import InvalidFormatError

_TIME_RE = re.compile(r"([0-9]{2}):([0-9]{2})")
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: str) -> int:
    """Parse an ``HH:MM`` 24-hour string into minutes since midnight."""
    if not isinstance(value, str):
        raise InvalidFormatError(f"Invalid time {value!r}. Use HH:MM (24-hour format)")

    match = _TIME_RE.fullmatch(value)
    if not match:
        raise InvalidFormatError(f"Invalid time {value!r}. Use HH:MM (24-hour format)")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidFormatError(f"Invalid time {value!r}. Hour must be 00-23 and minute 00-59")

    return hours * 60 + minutes


def from_minutes(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidFormatError(f"Minute offset {minutes} is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """
    Half-open interval overlap: [a_start, a_end) and [b_start, b_end).

    Touching ranges (10:00-11:00 and 11:00-12:00) do not overlap.
    """
    return a_start < b_end and b_start < a_end


def ranges_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """``overlaps`` for ``HH:MM`` strings."""
    return overlaps(to_minutes(a_start), to_minutes(a_end), to_minutes(b_start), to_minutes(b_end))


def parse_date(value: Union[str, date]) -> date:
    """Parse a strict ``YYYY-MM-DD`` calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise InvalidFormatError(f"Invalid date {value!r}. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidFormatError(f"Invalid date {value!r}. Not a real calendar date")


def business_timezone(name: Optional[str]) -> tzinfo:
    """Resolve a business timezone name, UTC when unset."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidFormatError(f"Unknown timezone {name!r}")


def slot_start_datetime(day: date, start_time: str, tz: tzinfo) -> datetime:
    """Absolute start instant of a wall-clock slot in the business timezone."""
    minutes = to_minutes(start_time)
    return datetime.combine(day, time(minutes // 60, minutes % 60), tzinfo=tz)


def hours_until(day: date, start_time: str, now: datetime, tz: tzinfo) -> float:
    """Lead time in hours between ``now`` and the slot start (negative once started)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (slot_start_datetime(day, start_time, tz) - now) / timedelta(hours=1)


def ensure_utc(now: Optional[datetime] = None) -> datetime:
    """Current instant as an aware UTC datetime."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)
