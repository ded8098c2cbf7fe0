"""Tests for working-day calendars."""

from datetime import date

from builders import employee
from timesheet_engine.calculators.working_days import WeekdayPatternCalendar


class TestWeekdayPatternCalendar:
    def test_default_sunday_to_thursday(self):
        calendar = WeekdayPatternCalendar()
        emp = employee()

        assert calendar.working_days_in_month(emp, 2024, 4) == 22
        assert calendar.is_working_day(emp, date(2024, 4, 7)) is True  # Sunday
        assert calendar.is_working_day(emp, date(2024, 4, 5)) is False  # Friday

    def test_employee_pattern(self):
        calendar = WeekdayPatternCalendar()
        emp = employee(working_days=("MON", "TUE", "WED", "THU", "FRI"))

        assert calendar.working_days_in_month(emp, 2024, 4) == 22
        assert calendar.is_working_day(emp, date(2024, 4, 5)) is True
        assert calendar.is_working_day(emp, date(2024, 4, 7)) is False

    def test_non_working_dates_removed(self):
        calendar = WeekdayPatternCalendar(non_working_dates=frozenset({date(2024, 4, 10)}))
        emp = employee()

        assert calendar.working_days_in_month(emp, 2024, 4) == 21
        assert calendar.is_working_day(emp, date(2024, 4, 10)) is False

    def test_lowercase_tokens(self):
        calendar = WeekdayPatternCalendar()
        emp = employee(working_days=("sun", "mon"))

        assert calendar.is_working_day(emp, date(2024, 4, 8)) is True  # Monday
