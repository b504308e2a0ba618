# backend/tests/utils/test_date_utils.py
"""
Tests for date and timezone helpers.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from portfolio_engine.utils.date_utils import (
    as_utc,
    date_window,
    is_business_day,
    local_today,
    market_close_datetime,
    to_local,
)

TORONTO = "America/Toronto"


class TestAsUtc:

    def test_naive_tagged_as_utc(self):
        naive = datetime(2024, 1, 17, 12, 0)

        assert as_utc(naive) == datetime(2024, 1, 17, 12, 0, tzinfo=timezone.utc)

    def test_aware_converted(self):
        plus_two = datetime(2024, 1, 17, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        assert as_utc(plus_two) == datetime(2024, 1, 17, 10, 0, tzinfo=timezone.utc)


class TestMarketCalendar:

    def test_local_today_crosses_midnight(self):
        """02:00 UTC on the 18th is still the 17th in Toronto."""
        now = datetime(2024, 1, 18, 2, 0, tzinfo=timezone.utc)

        assert local_today(now, TORONTO) == date(2024, 1, 17)

    def test_to_local_handles_daylight_saving(self):
        summer = datetime(2024, 7, 10, 20, 0, tzinfo=timezone.utc)

        assert to_local(summer, TORONTO).hour == 16

    def test_market_close_datetime(self):
        close = market_close_datetime(date(2024, 1, 17), 16, TORONTO)

        assert as_utc(close) == datetime(2024, 1, 17, 21, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("d,expected", [
        (date(2024, 1, 15), True),   # Monday
        (date(2024, 1, 19), True),   # Friday
        (date(2024, 1, 20), False),  # Saturday
        (date(2024, 1, 21), False),  # Sunday
    ])
    def test_is_business_day(self, d, expected):
        assert is_business_day(d) is expected


class TestDateWindow:

    def test_inclusive_window(self):
        window = date_window(date(2024, 1, 17), 7)

        assert len(window) == 8
        assert window[0] == date(2024, 1, 10)
        assert window[-1] == date(2024, 1, 17)

    def test_contiguous_across_month_boundary(self):
        window = date_window(date(2024, 3, 2), 5)

        assert all(b - a == timedelta(days=1) for a, b in zip(window, window[1:]))
        assert window[0] == date(2024, 2, 26)

    def test_zero_days(self):
        assert date_window(date(2024, 1, 17), 0) == [date(2024, 1, 17)]
