"""
UTC timestamp helpers.

Storage and the wire always use UTC; local time only appears in rendered text.
"""
from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from typing import Any

import pytz

WIRE_TS_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


def utcnow() -> datetime:
    return datetime.now(UTC)


def dt_replace_utc(dt: datetime | None | Any) -> datetime | None:
    """
    Return dt with tzinfo=UTC if naive, or None if dt is None.
    Use for optional datetimes that may be naive (e.g. from SQLite).
    """
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt
    return None


def to_wire_ts(dt: datetime) -> str:
    """Render as UTC "YYYY-MM-DD HH:MM:SS"."""
    aware = dt_replace_utc(dt)
    return aware.astimezone(UTC).strftime(WIRE_TS_FORMAT)


def parse_date(value: str) -> date:
    """Parse "YYYY-MM-DD". Raises ValueError on anything else."""
    return datetime.strptime(value, DATE_FORMAT).date()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [00:00 of the day, 00:00 of the next day). The end is exclusive."""
    start = datetime.combine(day, time(0, 0, 0), tzinfo=UTC)
    return start, start + timedelta(days=1)


def format_local(dt: datetime, tz_name: str, with_date: bool = True) -> str:
    """Render a UTC timestamp in the display timezone, 24h clock."""
    local = dt_replace_utc(dt).astimezone(pytz.timezone(tz_name))
    if with_date:
        return local.strftime("%d %b %Y, %H:%M")
    return local.strftime("%H:%M")
