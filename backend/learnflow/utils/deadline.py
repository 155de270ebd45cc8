# backend/learnflow/utils/deadline.py
"""Working-day deadline arithmetic.

All comparisons are date-only: any datetime passed in has its time of day
stripped first, so intraday clock differences never shift a result by a day.
"""
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union

from learnflow.errors import InvalidArgumentError

DateLike = Union[date, datetime]

# Python weekday numbers, Monday == 0
DEFAULT_WORKING_DAYS = frozenset({0, 1, 2, 3, 4})


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class DeadlineCalculator:
    """Deadline reached after ``working_days`` working days counted from ``start_date``.

    The start date itself never counts. Days outside ``working_days_of_week``
    and days listed in ``holidays`` are skipped.
    """

    def __init__(
        self,
        working_days: int,
        start_date: DateLike,
        working_days_of_week: Optional[Iterable[int]] = None,
        holidays: Optional[Iterable[DateLike]] = None,
    ):
        if working_days <= 0:
            raise InvalidArgumentError(
                f"Working day count must be positive, got {working_days}"
            )
        week = frozenset(working_days_of_week) if working_days_of_week is not None else DEFAULT_WORKING_DAYS
        if not week:
            raise InvalidArgumentError("At least one working day of the week is required")
        if not week <= set(range(7)):
            raise InvalidArgumentError(f"Invalid weekday numbers: {sorted(week)}")

        self.working_days = working_days
        self.start_date = _as_date(start_date)
        self.working_days_of_week = week
        self.holidays = frozenset(_as_date(h) for h in (holidays or ()))
        self.deadline_date = self._calculate()

    def _is_working_day(self, day: date) -> bool:
        return day.weekday() in self.working_days_of_week and day not in self.holidays

    def _calculate(self) -> date:
        current = self.start_date
        remaining = self.working_days
        while remaining > 0:
            current += timedelta(days=1)
            if self._is_working_day(current):
                remaining -= 1
        return current

    def is_overdue(self, now: DateLike) -> bool:
        return _as_date(now) > self.deadline_date

    def days_until_deadline(self, now: DateLike) -> int:
        """Calendar days left; negative once the deadline has passed."""
        return (self.deadline_date - _as_date(now)).days

    def is_approaching(self, now: DateLike, warning_days: int = 3) -> bool:
        days_left = self.days_until_deadline(now)
        return 0 < days_left <= warning_days


def days_until(deadline: DateLike, now: DateLike) -> int:
    """Date-only distance for a deadline that was computed earlier and stored."""
    return (_as_date(deadline) - _as_date(now)).days
