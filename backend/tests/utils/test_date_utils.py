# backend/tests/utils/test_date_utils.py
"""
Tests for snapshot period boundary helpers.
"""

from datetime import date

import pytest

from fundledger.utils.date_utils import (
    get_business_days,
    get_month_ends,
    get_period_boundaries,
    get_week_ends,
    month_end,
)


class TestBusinessDays:

    def test_skips_weekend(self):
        # 2024-01-01 is a Monday
        days = get_business_days(date(2024, 1, 1), date(2024, 1, 7))

        assert days == [date(2024, 1, d) for d in range(1, 6)]

    def test_weekend_only_range(self):
        assert get_business_days(date(2024, 1, 6), date(2024, 1, 7)) == []

    def test_inverted_range_is_empty(self):
        assert get_business_days(date(2024, 1, 5), date(2024, 1, 1)) == []


class TestMonthEnd:

    @pytest.mark.parametrize(
        "day,expected",
        [
            (date(2024, 2, 10), date(2024, 2, 29)),
            (date(2023, 2, 1), date(2023, 2, 28)),
            (date(2024, 12, 31), date(2024, 12, 31)),
            (date(2024, 4, 15), date(2024, 4, 30)),
        ],
    )
    def test_month_end(self, day, expected):
        assert month_end(day) == expected


class TestWeekAndMonthEnds:

    def test_fridays(self):
        assert get_week_ends(date(2024, 1, 1), date(2024, 1, 19)) == [
            date(2024, 1, 5), date(2024, 1, 12), date(2024, 1, 19),
        ]

    def test_start_on_friday(self):
        assert get_week_ends(date(2024, 1, 5), date(2024, 1, 5)) == [date(2024, 1, 5)]

    def test_month_ends_across_year(self):
        assert get_month_ends(date(2023, 11, 15), date(2024, 2, 29)) == [
            date(2023, 11, 30), date(2023, 12, 31), date(2024, 1, 31), date(2024, 2, 29),
        ]

    def test_month_end_outside_range(self):
        assert get_month_ends(date(2024, 3, 1), date(2024, 3, 10)) == []


class TestPeriodBoundaries:

    def test_daily(self):
        boundaries = get_period_boundaries(date(2024, 1, 1), date(2024, 1, 14), "DAILY")

        assert len(boundaries) == 10
        assert boundaries[-1] == date(2024, 1, 12)

    def test_weekly_appends_partial_period(self):
        assert get_period_boundaries(date(2024, 1, 1), date(2024, 1, 14), "weekly") == [
            date(2024, 1, 5), date(2024, 1, 12), date(2024, 1, 14),
        ]

    def test_monthly_appends_partial_period(self):
        assert get_period_boundaries(date(2024, 1, 1), date(2024, 3, 10), "MONTHLY") == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 10),
        ]

    def test_monthly_ending_on_month_end(self):
        assert get_period_boundaries(date(2024, 1, 1), date(2024, 2, 29), "MONTHLY") == [
            date(2024, 1, 31), date(2024, 2, 29),
        ]

    def test_inverted_range(self):
        with pytest.raises(ValueError, match="before start_date"):
            get_period_boundaries(date(2024, 2, 1), date(2024, 1, 1), "DAILY")

    def test_unknown_granularity(self):
        with pytest.raises(ValueError, match="Unknown granularity"):
            get_period_boundaries(date(2024, 1, 1), date(2024, 1, 31), "HOURLY")
