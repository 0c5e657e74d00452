"""
Clock and timezone helpers.

All schedule arithmetic is done in minutes since local midnight.
"""

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigurationError

MINUTES_PER_DAY = 24 * 60

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def parse_clock(value) -> Optional[int]:
    """Convert a clock value to minutes since midnight.

    Args:
        value: "HH:MM", "HH:MM:SS", a datetime.time, or None

    Returns:
        Minutes since midnight, or None when no value is given

    Raises:
        ValueError: If the value is not a valid clock time
    """
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid clock time: {value!r}")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid clock time: {value!r}")

    # 24:00 is accepted as end of day
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or (hours == 24 and minutes):
        raise ValueError(f"Invalid clock time: {value!r}")
    return hours * 60 + minutes


def normalize_clock(value) -> Optional[str]:
    """Return a clock value as "HH:MM".

    Integers are minutes since midnight; PyYAML loads unquoted 22:00 that way.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid clock time: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= MINUTES_PER_DAY:
            raise ValueError(f"Invalid clock time: {value!r}")
        return "24:00" if value == MINUTES_PER_DAY else minutes_to_clock(value)
    minutes = parse_clock(value)
    return "24:00" if minutes == MINUTES_PER_DAY else minutes_to_clock(minutes)


def minutes_to_clock(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM", wrapping around midnight."""
    m = minutes % MINUTES_PER_DAY
    return f"{m // 60:02d}:{m % 60:02d}"


def weekday_name(day: date) -> str:
    """Lowercase English weekday name for a date."""
    return WEEKDAY_NAMES[day.weekday()]


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {tz_name}") from e


def local_now(tz_name: str, now: Optional[datetime] = None) -> datetime:
    """Current time (or the given instant) in the site's timezone.

    Naive datetimes are taken to be UTC.
    """
    tz = get_zone(tz_name)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    """Calendar date in the site's timezone."""
    return local_now(tz_name, now).date()


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def is_within(minute: int, start: Optional[int], end: Optional[int]) -> bool:
    """True when minute falls in the half-open window [start, end).

    A window whose end is before its start (crossing midnight) matches nothing.
    """
    if start is None or end is None:
        return False
    return start <= minute < end
