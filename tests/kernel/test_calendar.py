"""
Tests for inventory_kernel.domain.calendar -- settlement windows.
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from hypothesis import given
from hypothesis import strategies as st

from inventory_kernel.domain.calendar import localize, month_window, previous_month

UTC = ZoneInfo("UTC")


class TestMonthWindow:
    def test_january(self):
        window = month_window(1, 2024, UTC)
        assert window.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert window.end == datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_leap_february(self):
        assert month_window(2, 2024, UTC).end.day == 29
        assert month_window(2, 2023, UTC).end.day == 28

    def test_bounds_are_inclusive(self):
        window = month_window(3, 2024, UTC)
        assert window.contains(window.start)
        assert window.contains(window.end)
        assert not window.contains(window.start - timedelta(microseconds=1))
        assert not window.contains(window.end + timedelta(microseconds=1))

    def test_reference_zone_shifts_utc_bounds(self):
        window = month_window(1, 2024, ZoneInfo("America/New_York"))
        assert window.start == datetime(2024, 1, 1, 5, tzinfo=timezone.utc)
        assert window.start.tzinfo == timezone.utc

    @given(st.integers(2020, 2100), st.integers(1, 12))
    def test_consecutive_months_abut(self, year, month):
        window = month_window(month, year, UTC)
        next_month, next_year = (1, year + 1) if month == 12 else (month + 1, year)
        following = month_window(next_month, next_year, UTC)
        assert following.start - window.end == timedelta(microseconds=1)


class TestPreviousMonth:
    @pytest.mark.parametrize(
        "today,expected",
        [
            (date(2024, 2, 24), (1, 2024)),
            (date(2024, 1, 24), (12, 2023)),
            (date(2024, 3, 1), (2, 2024)),
            (date(2024, 12, 31), (11, 2024)),
        ],
    )
    def test_previous_month(self, today, expected):
        assert previous_month(today) == expected


class TestLocalize:
    def test_naive_is_wall_clock_in_zone(self):
        tokyo = ZoneInfo("Asia/Tokyo")
        result = localize(datetime(2024, 1, 1, 9, 0), tokyo)
        assert result.astimezone(timezone.utc) == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        moment = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        result = localize(moment, ZoneInfo("Asia/Tokyo"))
        assert result == moment
        assert result.hour == 9
