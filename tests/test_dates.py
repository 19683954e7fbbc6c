"""Tests for calendar arithmetic."""

import pytest
from datetime import date

from finledger.engine.dates import (
    add_interval,
    add_months,
    clamp_day,
    days_between,
    iter_months,
    month_bucket,
    month_end,
    month_start,
    months_between,
)
from finledger.models import Frequency, MonthBucket


class TestAddInterval:
    """Tests for frequency steps."""

    def test_daily_weekly_biweekly(self):
        """Test fixed-length steps."""
        anchor = date(2024, 6, 10)
        assert add_interval(anchor, Frequency.DAILY) == date(2024, 6, 11)
        assert add_interval(anchor, Frequency.WEEKLY) == date(2024, 6, 17)
        assert add_interval(anchor, Frequency.BIWEEKLY) == date(2024, 6, 24)

    def test_monthly_clamps_to_month_end(self):
        """Test Jan 31 + 1 month lands on the last day of February."""
        assert add_interval(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)
        assert add_interval(date(2023, 1, 31), Frequency.MONTHLY) == date(2023, 2, 28)

    def test_yearly_leap_day(self):
        """Test Feb 29 + 1 year clamps to Feb 28."""
        assert add_interval(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    def test_multiple_intervals(self):
        """Test several steps at once."""
        assert add_interval(date(2024, 1, 15), Frequency.MONTHLY, 3) == date(2024, 4, 15)
        assert add_interval(date(2024, 1, 1), Frequency.WEEKLY, 2) == date(2024, 1, 15)

    def test_negative_intervals(self):
        """Test stepping backwards."""
        assert add_interval(date(2024, 3, 31), Frequency.MONTHLY, -1) == date(2024, 2, 29)


class TestMonthHelpers:
    """Tests for month-level helpers."""

    def test_month_start_and_end(self):
        """Test first and last day of a month."""
        assert month_start(date(2024, 2, 17)) == date(2024, 2, 1)
        assert month_end(date(2024, 2, 17)) == date(2024, 2, 29)
        assert month_end(date(2024, 4, 1)) == date(2024, 4, 30)

    def test_add_months_across_year(self):
        """Test month arithmetic across a year boundary."""
        assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)

    def test_clamp_day(self):
        """Test that day 31 is pulled back in short months."""
        assert clamp_day(2024, 4, 31) == date(2024, 4, 30)
        assert clamp_day(2024, 5, 31) == date(2024, 5, 31)

    def test_months_between(self):
        """Test whole calendar months between two dates."""
        assert months_between(date(2024, 11, 20), date(2025, 2, 1)) == 3

    def test_days_between_is_signed(self):
        """Test that days_between can be negative."""
        assert days_between(date(2024, 6, 10), date(2024, 6, 13)) == 3
        assert days_between(date(2024, 6, 13), date(2024, 6, 10)) == -3

    def test_month_bucket(self):
        """Test past/current/future classification."""
        today = date(2024, 6, 10)
        assert month_bucket(date(2024, 5, 31), today) == MonthBucket.PAST
        assert month_bucket(date(2024, 6, 30), today) == MonthBucket.CURRENT
        assert month_bucket(date(2024, 7, 1), today) == MonthBucket.FUTURE

    def test_iter_months_inclusive(self):
        """Test that both ends are included."""
        months = list(iter_months(date(2024, 11, 15), date(2025, 1, 3)))
        assert months == [date(2024, 11, 1), date(2024, 12, 1), date(2025, 1, 1)]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
