"""Tests for occurrence arithmetic."""

import pytest
from datetime import date, datetime

from fintrack.models.transaction import Frequency
from fintrack.recurring.schedule import (
    ScheduleError,
    as_calendar_date,
    first_occurrence_after,
    next_index_after,
    occurrence,
    step,
)


class TestStep:
    """Tests for single frequency steps."""

    def test_daily_and_weekly(self):
        assert step(date(2024, 1, 31), Frequency.DAILY) == date(2024, 2, 1)
        assert step(date(2024, 12, 30), Frequency.WEEKLY) == date(2025, 1, 6)

    def test_monthly_clamps_to_month_end(self):
        assert step(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)
        assert step(date(2023, 1, 31), Frequency.MONTHLY) == date(2023, 2, 28)

    def test_yearly_from_leap_day(self):
        assert step(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    def test_accepts_frequency_value(self):
        assert step(date(2024, 1, 1), "weekly") == date(2024, 1, 8)

    def test_unknown_frequency(self):
        with pytest.raises(ScheduleError, match="fortnightly"):
            step(date(2024, 1, 1), "fortnightly")


class TestOccurrence:
    """Occurrences are anchored on the start date."""

    def test_month_end_does_not_drift(self):
        start = date(2024, 1, 31)
        dates = [occurrence(start, Frequency.MONTHLY, k) for k in range(4)]
        assert dates == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_leap_day_returns_in_leap_years(self):
        start = date(2024, 2, 29)
        assert occurrence(start, Frequency.YEARLY, 1) == date(2025, 2, 28)
        assert occurrence(start, Frequency.YEARLY, 4) == date(2028, 2, 29)

    def test_strictly_increasing(self):
        start = date(2024, 1, 31)
        for frequency in Frequency:
            dates = [occurrence(start, frequency, k) for k in range(30)]
            assert all(a < b for a, b in zip(dates, dates[1:]))


class TestNextIndexAfter:
    """Tests for resuming after a watermark."""

    def test_before_start(self):
        assert next_index_after(date(2024, 1, 1), Frequency.WEEKLY, date(2023, 12, 31)) == 0

    def test_on_start(self):
        assert next_index_after(date(2024, 1, 1), Frequency.WEEKLY, date(2024, 1, 1)) == 1

    def test_between_occurrences(self):
        assert next_index_after(date(2024, 1, 1), Frequency.WEEKLY, date(2024, 1, 10)) == 2

    def test_daily_counts_days(self):
        assert next_index_after(date(2024, 1, 1), Frequency.DAILY, date(2024, 1, 31)) == 31

    def test_monthly_with_clamped_dates(self):
        start = date(2024, 1, 31)
        assert next_index_after(start, Frequency.MONTHLY, date(2024, 2, 29)) == 2
        assert next_index_after(start, Frequency.MONTHLY, date(2024, 3, 30)) == 2
        assert next_index_after(start, Frequency.MONTHLY, date(2024, 3, 31)) == 3

    def test_yearly(self):
        start = date(2024, 2, 29)
        assert next_index_after(start, Frequency.YEARLY, date(2025, 2, 27)) == 1
        assert next_index_after(start, Frequency.YEARLY, date(2025, 2, 28)) == 2

    def test_matches_brute_force(self):
        start = date(2023, 8, 31)
        after = date(2026, 5, 15)
        for frequency in Frequency:
            expected = 0
            while occurrence(start, frequency, expected) <= after:
                expected += 1
            assert next_index_after(start, frequency, after) == expected

    def test_first_occurrence_after(self):
        start = date(2024, 1, 31)
        assert first_occurrence_after(start, Frequency.MONTHLY, date(2024, 2, 29)) == date(2024, 3, 31)
        assert first_occurrence_after(start, Frequency.MONTHLY, date(2023, 1, 1)) == start


class TestCalendarDate:
    """Tests for as_calendar_date."""

    def test_datetime_reduced(self):
        assert as_calendar_date(datetime(2024, 1, 1, 23, 30)) == date(2024, 1, 1)

    def test_default_is_today(self):
        assert as_calendar_date() == date.today()
