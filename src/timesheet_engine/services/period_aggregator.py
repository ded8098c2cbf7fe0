"""Period totals for reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable
from uuid import UUID

from timesheet_engine.calculators.leave_valuation import LeaveValuationResolver
from timesheet_engine.calculators.line_builder import EntryLineBuilder
from timesheet_engine.calculators.payment_calculator import EntryAmount, PaymentCalculator
from timesheet_engine.calculators.types import (
    FULL_DAY,
    Employee,
    EmploymentType,
    EntryKind,
    TimeEntry,
    is_active,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class PeriodFilters:
    """Optional report filters. None means no filtering on that field."""

    employee_ids: frozenset[UUID] | None = None
    employment_types: frozenset[EmploymentType] | None = None
    service_context_ids: frozenset[UUID] | None = None
    employment_scopes: frozenset[Decimal] | None = None

    def accepts_employee(self, employee: Employee) -> bool:
        if self.employee_ids is not None and employee.employee_id not in self.employee_ids:
            return False
        if self.employment_types is not None and employee.employment_type not in self.employment_types:
            return False
        if self.employment_scopes is not None and employee.employment_scope not in self.employment_scopes:
            return False
        return True

    def accepts_entry(self, entry: TimeEntry) -> bool:
        if self.service_context_ids is None:
            return True
        return entry.service_context_id in self.service_context_ids


@dataclass(frozen=True)
class AdjustmentBuckets:
    credit: Decimal = ZERO
    debit: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.credit + self.debit


@dataclass(frozen=True)
class PreStartFlag:
    """A leave entry dated before the employee's start date."""

    employee_id: UUID
    entry_date: date
    entry_id: UUID


@dataclass(frozen=True)
class PeriodWarning:
    employee_id: UUID
    entry_date: date
    reason: str


@dataclass(frozen=True)
class PeriodDiagnostics:
    unique_paid_days: int = 0
    paid_leave_days: Decimal = ZERO
    adjustments_sum: Decimal = ZERO


@dataclass(frozen=True)
class EmployeePeriodTotals:
    """One employee's share of the period."""

    employee_id: UUID
    employment_type: EmploymentType
    pay: Decimal
    hours: Decimal
    sessions: int
    days_paid: int
    leave_days: Decimal
    unpaid_leave_days: Decimal
    leave_pay: Decimal
    adjustments: Decimal
    pre_start_leave: int


@dataclass(frozen=True)
class PeriodTotals:
    total_pay: Decimal
    total_hours: Decimal
    total_sessions: int
    per_employee: tuple[EmployeePeriodTotals, ...]
    adjustments: AdjustmentBuckets
    pre_start: tuple[PreStartFlag, ...] = ()
    warnings: tuple[PeriodWarning, ...] = ()
    diagnostics: PeriodDiagnostics = field(default_factory=PeriodDiagnostics)

    def for_employee(self, employee_id: UUID) -> EmployeePeriodTotals | None:
        for totals in self.per_employee:
            if totals.employee_id == employee_id:
                return totals
        return None


@dataclass
class _Accumulator:
    employee: Employee
    pay: Decimal = ZERO
    hours: Decimal = ZERO
    sessions: int = 0
    leave_days: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    leave_pay: Decimal = ZERO
    adjustments: Decimal = ZERO
    pre_start_leave: int = 0
    paid_days: set[date] = field(default_factory=set)

    def freeze(self) -> EmployeePeriodTotals:
        return EmployeePeriodTotals(
            employee_id=self.employee.employee_id,
            employment_type=self.employee.employment_type,
            pay=EntryLineBuilder.round_to_cents(self.pay),
            hours=self.hours,
            sessions=self.sessions,
            days_paid=len(self.paid_days),
            leave_days=self.leave_days,
            unpaid_leave_days=self.unpaid_leave_days,
            leave_pay=EntryLineBuilder.round_to_cents(self.leave_pay),
            adjustments=EntryLineBuilder.round_to_cents(self.adjustments),
            pre_start_leave=self.pre_start_leave,
        )


def _sort_key(entry: TimeEntry) -> tuple[str, date, str, str, str]:
    subtype = entry.leave_subtype.value if entry.leave_subtype else ""
    return (str(entry.employee_id), entry.entry_date, entry.kind.value, subtype, str(entry.entry_id))


class PeriodAggregator:
    """Folds a date range of entries into per-employee and period totals.

    Rules:
    - Trashed entries, unknown employees and non-leave entries dated before
      the start date are excluded
    - Pre-start leave contributes 0 and is flagged
    - Leave credit per (employee, date) is capped at 1.0 day
    - Salaried days are paid once per (employee, date); work beside leave
      pays the remaining share of the day
    - Adjustments fold into pay and are bucketed into credit/debit
    """

    def __init__(self, calculator: PaymentCalculator, valuation: LeaveValuationResolver):
        self.calculator = calculator
        self.valuation = valuation

    def aggregate(
        self,
        entries: Iterable[TimeEntry],
        employees: dict[UUID, Employee],
        start: date,
        end: date,
        filters: PeriodFilters | None = None,
    ) -> PeriodTotals:
        filters = filters or PeriodFilters()
        accumulators: dict[UUID, _Accumulator] = {}
        leave_credit: dict[tuple[UUID, date], Decimal] = {}
        salaried_work: dict[tuple[UUID, date], list[TimeEntry]] = {}
        pre_start: list[PreStartFlag] = []
        warnings: list[PeriodWarning] = []
        credit = ZERO
        debit = ZERO

        def warn(entry: TimeEntry, reason: str) -> None:
            warnings.append(PeriodWarning(entry.employee_id, entry.entry_date, reason))

        for entry in sorted(entries, key=_sort_key):
            if not is_active(entry) or entry.entry_date < start or entry.entry_date > end:
                continue
            employee = employees.get(entry.employee_id)
            if employee is None or not filters.accepts_employee(employee):
                continue
            if not filters.accepts_entry(entry):
                continue

            acc = accumulators.setdefault(employee.employee_id, _Accumulator(employee))

            if employee.is_before_start(entry.entry_date):
                if entry.is_leave:
                    pre_start.append(PreStartFlag(employee.employee_id, entry.entry_date, entry.entry_id))
                    acc.pre_start_leave += 1
                continue

            if entry.kind is EntryKind.ADJUSTMENT:
                amount = self.calculator.compute_amount(entry, employee).amount
                if amount >= 0:
                    credit += amount
                else:
                    debit += amount
                acc.adjustments += amount
                acc.pay += amount
                continue

            if entry.is_leave:
                self._add_leave(entry, employee, acc, leave_credit, warn)
                continue

            if employee.employment_type is EmploymentType.GLOBAL:
                salaried_work.setdefault((employee.employee_id, entry.entry_date), []).append(entry)
                acc.hours += entry.hours or ZERO
                continue

            amount = self.calculator.compute_amount(entry, employee)
            if amount.reason is not None:
                warn(entry, amount.reason.value)
            acc.pay += amount.amount
            if entry.kind is EntryKind.SESSION:
                acc.sessions += entry.sessions_count or 0
                acc.hours += self.calculator.session_hours(entry)
            else:
                acc.hours += entry.hours or ZERO
            if amount.amount > 0:
                acc.paid_days.add(entry.entry_date)

        salaried_days = sorted(salaried_work.items(), key=lambda kv: (str(kv[0][0]), kv[0][1]))
        for (employee_id, day), day_entries in salaried_days:
            acc = accumulators[employee_id]
            share = max(ZERO, FULL_DAY - leave_credit.get((employee_id, day), ZERO))
            if share <= 0:
                continue
            daily = self.calculator.daily_rate(acc.employee, day)
            if not daily.is_resolved:
                warn(day_entries[0], daily.reason.value if daily.reason else "no_rate_defined")
                continue
            acc.pay += daily.amount * share
            acc.paid_days.add(day)

        per_employee = tuple(
            accumulators[k].freeze() for k in sorted(accumulators, key=str)
        )
        total_pay = sum((a.pay for a in accumulators.values()), ZERO)
        paid_leave_days = sum((a.leave_days for a in accumulators.values()), ZERO)
        unique_paid_days = sum(len(a.paid_days) for a in accumulators.values())

        return PeriodTotals(
            total_pay=EntryLineBuilder.round_to_cents(total_pay),
            total_hours=sum((a.hours for a in accumulators.values()), ZERO),
            total_sessions=sum(a.sessions for a in accumulators.values()),
            per_employee=per_employee,
            adjustments=AdjustmentBuckets(
                credit=EntryLineBuilder.round_to_cents(credit),
                debit=EntryLineBuilder.round_to_cents(debit),
            ),
            pre_start=tuple(pre_start),
            warnings=tuple(warnings),
            diagnostics=PeriodDiagnostics(
                unique_paid_days=unique_paid_days,
                paid_leave_days=paid_leave_days,
                adjustments_sum=EntryLineBuilder.round_to_cents(credit + debit),
            ),
        )

    def _add_leave(
        self,
        entry: TimeEntry,
        employee: Employee,
        acc: _Accumulator,
        leave_credit: dict[tuple[UUID, date], Decimal],
        warn: Callable[[TimeEntry, str], None],
    ) -> None:
        if not entry.is_payable_leave:
            acc.unpaid_leave_days += entry.leave_fraction
            return

        key = (employee.employee_id, entry.entry_date)
        used = leave_credit.get(key, ZERO)
        credited = min(entry.leave_fraction, max(ZERO, FULL_DAY - used))
        if credited <= 0:
            warn(entry, "leave_credit_capped")
            return
        leave_credit[key] = used + credited

        amount = self._leave_amount(entry, employee, warn)
        value = amount.amount * credited / entry.leave_fraction
        acc.leave_days += credited
        acc.leave_pay += value
        acc.pay += value
        if value > 0:
            acc.paid_days.add(entry.entry_date)

    def _leave_amount(
        self,
        entry: TimeEntry,
        employee: Employee,
        warn: Callable[[TimeEntry, str], None],
    ) -> EntryAmount:
        override = entry.leave_value_override
        has_override = override is not None and override.is_finite() and override > 0
        if employee.employment_type is EmploymentType.HOURLY and not has_override:
            day_value = self.valuation.value_for_employee(employee, entry.entry_date)
            if day_value.used_fallback_rate:
                warn(entry, "used_fallback_rate")
            elif day_value.reason is not None:
                warn(entry, day_value.reason.value)
            return EntryAmount(amount=day_value.amount * entry.leave_fraction, rate_used=day_value.amount)

        amount = self.valuation.value_leave_entry(entry, employee)
        if amount.reason is not None:
            warn(entry, amount.reason.value)
        return amount
