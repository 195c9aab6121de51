"""Time parsing, calculation and formatting helpers.

All wall-clock values are local, naive datetimes. Task times are "HH:MM"
strings interpreted on the same calendar day as the reference datetime.
"""

import re
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional

from focusflow.errors import InvalidFormat

_TIME_PATTERN = re.compile(r"\d{2}:\d{2}")


class TimeOfDay(NamedTuple):
    hours: int
    minutes: int


def parse_time(value: str) -> TimeOfDay:
    """Parse an "HH:MM" string.

    Args:
        value: Time string in zero-padded 24h format

    Returns:
        TimeOfDay(hours, minutes)

    Raises:
        InvalidFormat: If the string is not HH:MM or out of range
    """
    if not isinstance(value, str) or not _TIME_PATTERN.fullmatch(value):
        raise InvalidFormat(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = (int(part) for part in value.split(":"))
    if hours > 23 or minutes > 59:
        raise InvalidFormat(f"Invalid time {value!r}, out of range")
    return TimeOfDay(hours, minutes)


def is_valid_time(value: str) -> bool:
    try:
        parse_time(value)
        return True
    except InvalidFormat:
        return False


def time_to_minutes(value: str) -> int:
    t = parse_time(value)
    return t.hours * 60 + t.minutes


def format_hhmm(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_seconds(minutes: int) -> int:
    return minutes * 60


def seconds_to_minutes(seconds: int) -> int:
    return seconds // 60


def calculate_duration(start: str, end: str) -> int:
    """Duration between two same-day times, in seconds.

    Overnight spans are not handled: end before start yields 0.
    """
    return minutes_to_seconds(max(0, time_to_minutes(end) - time_to_minutes(start)))


def combine_with_time(reference: datetime, value: str) -> datetime:
    """Return `reference` with its clock set to `value` (seconds zeroed)."""
    t = parse_time(value)
    return reference.replace(hour=t.hours, minute=t.minutes, second=0, microsecond=0)


def calculate_remaining_time(now: datetime, start: str, end: str) -> int:
    """Seconds left in the [start, end] window as of `now`.

    Before the window the full duration is returned, after it 0.
    """
    start_dt = combine_with_time(now, start)
    end_dt = combine_with_time(now, end)

    if now < start_dt:
        return max(0, int((end_dt - start_dt).total_seconds()))
    if now > end_dt:
        return 0
    return max(0, int((end_dt - now).total_seconds()))


def is_task_active(now: datetime, start: str, end: str) -> bool:
    return combine_with_time(now, start) <= now <= combine_with_time(now, end)


def format_time(seconds: int, include_hours: bool = False) -> str:
    """Format seconds as H:MM:SS (one hour or more) or M:SS.

    Examples:
        format_time(3661) -> '1:01:01'
        format_time(125) -> '2:05'
    """
    seconds = max(0, int(seconds))
    hrs, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    if hrs > 0 or include_hours:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def today_local_iso(now: Optional[datetime] = None) -> str:
    """Local calendar day key in YYYY-MM-DD form."""
    return (now or datetime.now()).date().isoformat()


def parse_day(value: str) -> date:
    """Validate a YYYY-MM-DD day key."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidFormat(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
