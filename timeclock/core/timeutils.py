"""
Time helpers shared by the state machine, the timesheet and the batch jobs.

Timestamps are stored in UTC.  Schedules and quiet hours are wall-clock
``"HH:MM"`` strings interpreted in a named (IANA) timezone.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::[0-5]\d)?$")


def ensure_utc(dt: datetime | None) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt is None:
        return datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_hhmm(value: str) -> bool:
    return bool(_HHMM_RE.match(value))


def parse_hhmm(value: str) -> time:
    """Parse ``"HH:MM"`` (seconds tolerated) into a ``time``."""
    m = _HHMM_RE.match(value.strip())
    if not m:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return time(int(m.group(1)), int(m.group(2)))


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def day_of_week(d: date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday."""
    return (d.weekday() + 1) % 7


def local_date(ts: datetime, tz: ZoneInfo) -> date:
    return ensure_utc(ts).astimezone(tz).date()


def at_local_time(day: date, hhmm: str, tz: ZoneInfo) -> datetime:
    """UTC instant of wall-clock ``hhmm`` on ``day`` in ``tz``."""
    local = datetime.combine(day, parse_hhmm(hhmm), tzinfo=tz)
    return local.astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """``[start, end)`` of a local calendar day, as UTC instants."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants (floored)."""
    return int((ensure_utc(end) - ensure_utc(start)).total_seconds() // 60)
