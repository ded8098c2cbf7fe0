"""Paid leave day valuation from trailing work history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from dateutil.relativedelta import relativedelta

from timesheet_engine.calculators.payment_calculator import EntryAmount, PaymentCalculator
from timesheet_engine.calculators.rate_resolver import RateResolver
from timesheet_engine.calculators.types import (
    Employee,
    EmploymentType,
    RateReason,
    TimeEntry,
    is_active,
)
from timesheet_engine.policies import LeavePayMethod, LeavePayPolicy

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
TWELVE_MONTHS = 12


@dataclass(frozen=True)
class HistoryTotals:
    """Work history aggregated over a lookback window."""

    total_earnings: Decimal = ZERO
    total_hours: Decimal = ZERO
    worked_days: frozenset[date] = field(default_factory=frozenset)

    @property
    def worked_days_count(self) -> int:
        return len(self.worked_days)

    def to_dict(self) -> dict[str, str | int]:
        return {
            "total_earnings": str(self.total_earnings),
            "total_hours": str(self.total_hours),
            "worked_days": self.worked_days_count,
        }


@dataclass(frozen=True)
class LeaveDayValue:
    """Value of one full leave day.

    `used_fallback_rate` marks a value taken from the current rate because
    the configured method had nothing to work with.
    """

    amount: Decimal
    used_fallback_rate: bool = False
    method: LeavePayMethod | None = None
    insufficient_data: bool = False
    pre_start: bool = False
    reason: RateReason | None = None
    diagnostics: HistoryTotals = field(default_factory=HistoryTotals)


class LeaveValuationResolver:
    """Values paid leave days for employees without a direct day rate.

    Methods:
    - fixed: employee leave_fixed_day_rate, else policy fixed_rate_default
    - legal: earnings / distinct worked days over the trailing window; with
      legal_allow_12m_if_better the 12-month window wins when larger
    - average: average hourly earning x average hours per worked day

    The window covers `lookback_months` and ends the day before the leave
    date. Only active, payable hours and session entries count. Values never
    raise: missing history falls back to the current rate with
    `used_fallback_rate` set.
    """

    def __init__(
        self,
        calculator: PaymentCalculator,
        entries: Iterable[TimeEntry],
        policy: LeavePayPolicy | None = None,
    ):
        self.calculator = calculator
        self.policy = policy or LeavePayPolicy()
        self._history: dict[UUID, list[TimeEntry]] = {}
        for entry in entries:
            if is_active(entry) and entry.payable and entry.kind.is_work:
                self._history.setdefault(entry.employee_id, []).append(entry)

    @property
    def resolver(self) -> RateResolver:
        return self.calculator.resolver

    def value_leave_day(self, employee_id: UUID, day: date) -> LeaveDayValue:
        employee = self.resolver.employees.get(employee_id)
        if employee is None:
            return LeaveDayValue(amount=ZERO, reason=RateReason.UNKNOWN_EMPLOYEE)
        return self.value_for_employee(employee, day)

    def value_for_employee(self, employee: Employee, day: date) -> LeaveDayValue:
        if employee.is_before_start(day):
            return LeaveDayValue(amount=ZERO, pre_start=True, reason=RateReason.NOT_YET_EMPLOYED)

        if employee.employment_type is EmploymentType.INSTRUCTOR:
            return LeaveDayValue(amount=ZERO, reason=RateReason.LEAVE_VALUATION_NOT_APPLICABLE)

        if employee.employment_type is EmploymentType.GLOBAL:
            daily = self.calculator.daily_rate(employee, day)
            if daily.is_resolved:
                return LeaveDayValue(amount=daily.amount)
            return LeaveDayValue(
                amount=ZERO,
                used_fallback_rate=True,
                insufficient_data=True,
                reason=daily.reason,
            )

        method = self.policy.method_for(employee.leave_pay_method)

        if method is LeavePayMethod.FIXED:
            fixed = self._fixed_rate(employee)
            if fixed is not None:
                return LeaveDayValue(amount=fixed, method=method)
            self._log_insufficient(method, employee.employee_id, HistoryTotals())
            return self._fallback(employee, day, method, HistoryTotals())

        value, totals = self._windowed_value(employee, day, method, self.policy.lookback_months)
        if method is LeavePayMethod.LEGAL and self.policy.legal_allow_12m_if_better:
            twelve_value, twelve_totals = self._windowed_value(employee, day, method, TWELVE_MONTHS)
            if twelve_value > value:
                value, totals = twelve_value, twelve_totals

        if value <= 0:
            self._log_insufficient(method, employee.employee_id, totals)
            return self._fallback(employee, day, method, totals)

        return LeaveDayValue(amount=value, method=method, diagnostics=totals)

    def value_leave_entry(self, entry: TimeEntry, employee: Employee) -> EntryAmount:
        """Value one stored or candidate leave entry for any employment type."""
        fraction = entry.leave_fraction
        if not entry.payable or entry.leave_subtype is None or not entry.leave_subtype.is_payable:
            return EntryAmount(amount=ZERO, quantity=fraction)

        if employee.is_before_start(entry.entry_date):
            return EntryAmount.zero(RateReason.NOT_YET_EMPLOYED)

        if employee.employment_type is EmploymentType.GLOBAL:
            return self.calculator.compute_amount(entry, employee)

        override = entry.leave_value_override
        if override is not None and override.is_finite() and override > 0:
            return EntryAmount(amount=override * fraction, rate_used=override, quantity=fraction)

        if employee.employment_type is EmploymentType.INSTRUCTOR:
            if entry.total_payment is not None:
                return EntryAmount(amount=entry.total_payment, rate_used=entry.rate_used, quantity=fraction)
            return EntryAmount.zero(RateReason.LEAVE_VALUATION_NOT_APPLICABLE)

        day_value = self.value_for_employee(employee, entry.entry_date)
        return EntryAmount(
            amount=day_value.amount * fraction,
            rate_used=day_value.amount,
            reason=day_value.reason if day_value.amount <= 0 else None,
            quantity=fraction,
        )

    def collect_history(self, employee: Employee, start: date, end: date) -> HistoryTotals:
        """Aggregate payable work entries dated within [start, end]."""
        earnings = ZERO
        hours = ZERO
        worked: set[date] = set()

        for entry in self._history.get(employee.employee_id, []):
            if entry.entry_date < start or entry.entry_date > end:
                continue
            amount = self.calculator.compute_amount(entry, employee).amount
            entry_hours = self._entry_hours(entry)
            earnings += amount
            if entry_hours > 0:
                hours += entry_hours
            if entry_hours > 0 or amount != 0:
                worked.add(entry.entry_date)

        return HistoryTotals(total_earnings=earnings, total_hours=hours, worked_days=frozenset(worked))

    @staticmethod
    def lookback_window(day: date, months: int) -> tuple[date, date]:
        """[start, end] of a trailing window ending the day before `day`."""
        return day - relativedelta(months=max(1, months)), day - timedelta(days=1)

    def _windowed_value(
        self,
        employee: Employee,
        day: date,
        method: LeavePayMethod,
        months: int,
    ) -> tuple[Decimal, HistoryTotals]:
        start, end = self.lookback_window(day, months)
        totals = self.collect_history(employee, start, end)
        if not totals.worked_days_count or totals.total_earnings <= 0:
            return ZERO, totals

        if method is LeavePayMethod.AVERAGE:
            if totals.total_hours <= 0:
                return ZERO, totals
            avg_hourly = totals.total_earnings / totals.total_hours
            avg_day_hours = totals.total_hours / totals.worked_days_count
            return avg_hourly * avg_day_hours, totals

        return totals.total_earnings / totals.worked_days_count, totals

    def _entry_hours(self, entry: TimeEntry) -> Decimal:
        if entry.hours is not None and entry.hours > 0:
            return entry.hours
        if entry.sessions_count:
            return self.calculator.session_hours(entry)
        return ZERO

    def _fixed_rate(self, employee: Employee) -> Decimal | None:
        for candidate in (employee.leave_fixed_day_rate, self.policy.fixed_rate_default):
            if candidate is not None and candidate >= 0:
                return candidate
        return None

    def _fallback(
        self,
        employee: Employee,
        day: date,
        method: LeavePayMethod,
        totals: HistoryTotals,
    ) -> LeaveDayValue:
        resolution = self.resolver.resolve_for_employee(employee, day)
        return LeaveDayValue(
            amount=resolution.rate if resolution.is_resolved else ZERO,
            used_fallback_rate=True,
            method=method,
            insufficient_data=True,
            reason=resolution.reason,
            diagnostics=totals,
        )

    @staticmethod
    def _log_insufficient(method: LeavePayMethod, employee_id: UUID, totals: HistoryTotals) -> None:
        logger.debug(
            "Insufficient leave valuation data for employee %s (method=%s): %s",
            employee_id,
            method.value,
            totals.to_dict(),
        )
