# app/services/clock.py
from __future__ import annotations
from datetime import datetime, date, time, timedelta

import pytz

from ..config import settings


# ====== Time utilities ======
# Everything is stored as NAIVE LOCAL time of the clinic.
def _local_tz():
    return pytz.timezone(settings.TIMEZONE)


def now_local() -> datetime:
    """Current clinic-local time, naive."""
    return datetime.now(_local_tz()).replace(tzinfo=None)


def to_local_naive(dt: datetime) -> datetime:
    """Aware datetimes are converted to the clinic TZ; naive ones are assumed local already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(_local_tz()).replace(tzinfo=None)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[00:00 of day, 00:00 of next day)."""
    start = datetime.combine(day, time(0, 0))
    return start, start + timedelta(days=1)


def parse_hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def format_hhmm(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def human_datetime(dt: datetime) -> str:
    return dt.strftime("%d/%m/%Y %H:%M")
