# app/services/timeutils.py
from __future__ import annotations
import re
from datetime import date, datetime, time
from typing import Optional, Tuple

import pytz
from dateutil.relativedelta import relativedelta

from ..config import settings
from ..errors import InvalidTimeFormat

_CANONICAL_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_TWELVE_HOUR = re.compile(r"^(\d{1,2}):([0-5]\d)\s*(AM|PM)$", re.IGNORECASE)
_CLOCK = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _local_tz():
    return pytz.timezone(settings.TIMEZONE)


def local_now() -> datetime:
    """Naive wall-clock time at the clinic."""
    return datetime.now(_local_tz()).replace(tzinfo=None)


def local_today() -> date:
    """Today's calendar date at the clinic."""
    return local_now().date()


def is_canonical_time(value: str) -> bool:
    return bool(_CANONICAL_TIME.match(value))


def normalize_time(raw: str) -> str:
    """
    Returns the canonical 24-hour ``HH:MM`` form of ``raw``.

    ``"14:00"`` is returned unchanged; ``"2:00 PM"`` becomes ``"14:00"``,
    ``"12:00 AM"`` becomes ``"00:00"`` and ``"12:30 pm"`` stays ``"12:30"``.
    Anything else raises InvalidTimeFormat; the caller has to ask again.
    """
    if not isinstance(raw, str):
        raise TypeError(f"time must be a string, got {type(raw).__name__}")
    value = raw.strip()
    if _CANONICAL_TIME.match(value):
        return value

    m = _TWELVE_HOUR.match(value)
    if m:
        hours, minutes, period = int(m.group(1)), m.group(2), m.group(3).upper()
        if 1 <= hours <= 12:
            if period == "PM" and hours != 12:
                hours += 12
            if period == "AM" and hours == 12:
                hours = 0
            return f"{hours:02d}:{minutes}"

    raise InvalidTimeFormat(f"Unrecognized time: {raw!r}")


def policy_window(today: Optional[date] = None) -> Tuple[date, date]:
    """(first, last) bookable dates: today through today + N calendar months."""
    today = today or local_today()
    return today, today + relativedelta(months=settings.BOOKING_WINDOW_MONTHS)


def parse_iso_date(raw: str) -> Optional[date]:
    if not isinstance(raw, str) or not _ISO_DATE.match(raw):
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        # e.g. 2025-02-30
        return None


def parse_clock(raw) -> Optional[time]:
    """Parses ``HH:MM`` or ``HH:MM:SS``; returns None for anything else."""
    if isinstance(raw, time):
        return raw.replace(second=0, microsecond=0)
    if not isinstance(raw, str):
        return None
    m = _CLOCK.match(raw.strip())
    if not m:
        return None
    return time(int(m.group(1)), int(m.group(2)))


def format_clock(value: time) -> str:
    return value.strftime("%H:%M")
