"""Recurring transaction materialization package."""

from fintrack.recurring.guard import InFlightGuard
from fintrack.recurring.materializer import RecurringMaterializer
from fintrack.recurring.schedule import (
    ScheduleError,
    as_calendar_date,
    first_occurrence_after,
    next_index_after,
    occurrence,
    step,
)

__all__ = [
    "InFlightGuard",
    "RecurringMaterializer",
    "ScheduleError",
    "as_calendar_date",
    "first_occurrence_after",
    "next_index_after",
    "occurrence",
    "step",
]
