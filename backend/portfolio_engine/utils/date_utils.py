# backend/portfolio_engine/utils/date_utils.py
"""
Date and time helpers shared by the snapshot, scheduler and cache code.

All persisted timestamps are timezone-aware UTC. Calendar decisions (which
day "today" is, whether the market has closed) are made in the market
timezone.

Usage:
    from portfolio_engine.utils.date_utils import local_today, is_business_day
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as an aware UTC datetime. Default clock for services."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    SQLite returns naive datetimes for DateTime(timezone=True) columns;
    those are stored as UTC, so naive values are tagged rather than shifted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(now: datetime, tz_name: str) -> datetime:
    """Express an instant in the given IANA timezone."""
    return as_utc(now).astimezone(ZoneInfo(tz_name))


def local_today(now: datetime, tz_name: str) -> date:
    """Calendar date of `now` in the given timezone."""
    return to_local(now, tz_name).date()


def market_close_datetime(d: date, close_hour: int, tz_name: str) -> datetime:
    """The canonical valuation instant for a day: close_hour:00 local time."""
    return datetime.combine(d, time(hour=close_hour), tzinfo=ZoneInfo(tz_name))


def is_business_day(d: date) -> bool:
    """
    Check if a date is a business day (weekday).

    Market holidays are not modelled; only Saturday and Sunday are excluded.
    """
    return d.weekday() < 5


def date_window(end: date, days: int) -> list[date]:
    """
    Every calendar day in [end - days, end], oldest first.

    Always returns days + 1 entries.
    """
    start = end - timedelta(days=days)
    return [start + timedelta(days=offset) for offset in range(days + 1)]
