"""Time utilities with timezone support.

Datetimes are stored as naive UTC; local time is only used for the
publishing day boundary.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz

_INTERVAL_RE = re.compile(r"(\d+)\s*(minute|hour|day)", re.IGNORECASE)
_UNIT_SECONDS = {"minute": 60, "hour": 3600, "day": 86400}


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_interval(expression: Optional[str]) -> Optional[timedelta]:
    """Parse ``"4 hours"``, ``"30 minutes"``, ``"1 day"``. Returns None if unparseable."""
    if not expression:
        return None
    match = _INTERVAL_RE.search(expression)
    if not match:
        return None
    value = int(match.group(1))
    return timedelta(seconds=value * _UNIT_SECONDS[match.group(2).lower()])


def is_due(last_checked_at: Optional[datetime], check_frequency: Optional[str],
           now: Optional[datetime] = None) -> bool:
    """A source is due when never checked, its interval is unparseable, or the interval elapsed."""
    if last_checked_at is None:
        return True
    interval = parse_interval(check_frequency)
    if interval is None:
        return True
    return (now or utcnow()) - last_checked_at > interval


def local_day_start_utc(timezone_str: str = "UTC", now: Optional[datetime] = None) -> datetime:
    """Midnight of the current day in ``timezone_str``, as naive UTC for DB queries.

    ``now`` is an aware datetime; defaults to the current time.
    """
    tz = pytz.timezone(timezone_str)
    local_now = (now or datetime.now(pytz.UTC)).astimezone(tz)
    day_start = tz.localize(datetime(local_now.year, local_now.month, local_now.day))
    return day_start.astimezone(pytz.UTC).replace(tzinfo=None)
