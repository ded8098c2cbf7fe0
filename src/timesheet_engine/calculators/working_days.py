"""Working-day calendars used to derive salaried daily rates."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Protocol

from timesheet_engine.calculators.types import Employee

# date.weekday() index -> token
WEEKDAY_TOKENS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


class WorkingDayCalendar(Protocol):
    """Strategy answering which calendar days count as working days."""

    def is_working_day(self, employee: Employee, day: date) -> bool: ...

    def working_days_in_month(self, employee: Employee, year: int, month: int) -> int: ...


class WeekdayPatternCalendar:
    """Working days are the employee's configured weekdays.

    Employees without a configured pattern fall back to `default_days`.
    Explicit `non_working_dates` (e.g. closures) are removed from the count.
    """

    def __init__(
        self,
        default_days: tuple[str, ...] = ("SUN", "MON", "TUE", "WED", "THU"),
        non_working_dates: frozenset[date] = frozenset(),
    ):
        self.default_days = tuple(d.upper() for d in default_days)
        self.non_working_dates = non_working_dates

    def _pattern(self, employee: Employee) -> set[str]:
        days = employee.working_days or self.default_days
        return {d.strip().upper() for d in days if d and d.strip()}

    def is_working_day(self, employee: Employee, day: date) -> bool:
        if day in self.non_working_dates:
            return False
        return WEEKDAY_TOKENS[day.weekday()] in self._pattern(employee)

    def working_days_in_month(self, employee: Employee, year: int, month: int) -> int:
        pattern = self._pattern(employee)
        _, last_day = calendar.monthrange(year, month)
        count = 0
        for day_number in range(1, last_day + 1):
            day = date(year, month, day_number)
            if day in self.non_working_dates:
                continue
            if WEEKDAY_TOKENS[day.weekday()] in pattern:
                count += 1
        return count
