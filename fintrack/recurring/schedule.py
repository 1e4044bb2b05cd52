"""
Occurrence Arithmetic

Occurrences are anchored on the definition's start date: occurrence k is
start_date advanced by k frequency steps in one go, never by repeatedly
stepping the previous occurrence. Month and year steps use relativedelta,
which clamps to the last valid day of the target month, so a definition
starting on 31 January lands on 28/29 February and returns to 31 March
instead of drifting to the 28th or 29th for the rest of the year.
"""

from datetime import date, datetime
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from fintrack.models.transaction import Frequency


class ScheduleError(Exception):
    """A definition's frequency cannot be stepped."""
    pass


def as_calendar_date(value: Optional[Union[date, datetime]] = None) -> date:
    """Reduce a date or datetime to its calendar date (default: today)."""
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    return value


def _as_frequency(frequency) -> Frequency:
    try:
        return Frequency(frequency)
    except ValueError:
        raise ScheduleError(f"Unknown frequency: {frequency!r}")


def _delta(frequency: Frequency, count: int) -> relativedelta:
    frequency = _as_frequency(frequency)
    if frequency == Frequency.DAILY:
        return relativedelta(days=count)
    if frequency == Frequency.WEEKLY:
        return relativedelta(weeks=count)
    if frequency == Frequency.MONTHLY:
        return relativedelta(months=count)
    return relativedelta(years=count)


def step(d: date, frequency: Frequency, count: int = 1) -> date:
    """Advance `d` by `count` frequency steps."""
    return d + _delta(frequency, count)


def occurrence(start: date, frequency: Frequency, index: int) -> date:
    """Date of the occurrence with the given zero-based index."""
    return step(start, frequency, index)


def _estimate_index(start: date, frequency: Frequency, after: date) -> int:
    days = (after - start).days
    if frequency == Frequency.DAILY:
        return days + 1
    if frequency == Frequency.WEEKLY:
        return days // 7 + 1
    if frequency == Frequency.MONTHLY:
        return (after.year - start.year) * 12 + (after.month - start.month)
    return after.year - start.year


def next_index_after(start: date, frequency: Frequency, after: date) -> int:
    """
    Index of the first occurrence strictly after `after`.

    Equivalently, the number of occurrences on or before `after`.
    """
    if after < start:
        return 0

    index = max(_estimate_index(start, _as_frequency(frequency), after), 0)
    while index > 0 and occurrence(start, frequency, index - 1) > after:
        index -= 1
    while occurrence(start, frequency, index) <= after:
        index += 1
    return index


def first_occurrence_after(start: date, frequency: Frequency, after: date) -> date:
    """First occurrence strictly after `after` (the start date if `after` precedes it)."""
    return occurrence(start, frequency, next_index_after(start, frequency, after))
