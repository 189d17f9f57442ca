"""
Calendar helpers for challenges: local "today", status, day counters and
display ranges.
"""

from datetime import date, datetime
from typing import Optional

import pytz

from agora.core.config import settings


def local_today(tz_name: Optional[str] = None) -> date:
    """Today's date in the given timezone (defaults to settings.TIMEZONE)."""
    try:
        tz = pytz.timezone(tz_name or settings.TIMEZONE)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    return datetime.now(tz).date()


def challenge_status(start_date: date, end_date: date, today: date) -> str:
    """upcoming before start, ended after end, active on both boundary days."""
    if today < start_date:
        return "upcoming"
    if today > end_date:
        return "ended"
    return "active"


def total_days(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days + 1


def day_number(start_date: date, today: date) -> int:
    """1-based day of the challenge ("Day 3 of 30")."""
    return (today - start_date).days + 1


def _short(value: date) -> str:
    return f"{value.strftime('%b')} {value.day}"


def format_date_range(start_date: date, end_date: date) -> str:
    """'Jan 1 – Jan 31, 2025'"""
    return f"{_short(start_date)} – {_short(end_date)}, {end_date.year}"
