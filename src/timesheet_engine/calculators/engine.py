"""Timesheet valuation engine - public facade over one snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from timesheet_engine.calculators.leave_valuation import LeaveDayValue, LeaveValuationResolver
from timesheet_engine.calculators.payment_calculator import EntryAmount, PaymentCalculator
from timesheet_engine.calculators.rate_resolver import RateHistory, RateResolution, RateResolver
from timesheet_engine.calculators.types import (
    Employee,
    EngineSnapshot,
    EntryKind,
    TimeEntry,
)
from timesheet_engine.calculators.working_days import WeekdayPatternCalendar, WorkingDayCalendar
from timesheet_engine.policies import HolidayRule, LeavePayPolicy, LeavePolicy
from timesheet_engine.services.leave_ledger import LeaveLedger, LeaveSummary, summarize_leave
from timesheet_engine.services.period_aggregator import PeriodAggregator, PeriodFilters, PeriodTotals
from timesheet_engine.services.save_pipeline import SaveOutcome, SavePipeline, SaveRequest


class SnapshotError(Exception):
    """Raised when a facade call names an employee missing from the snapshot."""

    def __init__(self, employee_id: UUID, operation: str):
        self.employee_id = employee_id
        self.operation = operation
        super().__init__(f"Employee {employee_id} is not in the snapshot ({operation})")


@dataclass(frozen=True)
class LeaveBalance:
    """Balance position for one employee on one date."""

    employee_id: UUID
    as_of: date
    balance: Decimal
    summary: LeaveSummary


class TimesheetEngine:
    """Valuation and leave accounting over an immutable snapshot.

    Every call is a pure function of the snapshot and the policies the
    engine was built with; nothing is cached between engines.

    Pipeline:
    1) RateResolver over the append-only rate history
    2) PaymentCalculator per entry
    3) LeaveValuationResolver for leave days without a direct rate
    4) SavePipeline / PeriodAggregator on top
    """

    def __init__(
        self,
        snapshot: EngineSnapshot,
        leave_policy: LeavePolicy | None = None,
        leave_pay_policy: LeavePayPolicy | None = None,
        working_calendar: WorkingDayCalendar | None = None,
    ):
        self.snapshot = snapshot
        self.leave_policy = leave_policy or LeavePolicy()
        self.leave_pay_policy = leave_pay_policy or LeavePayPolicy()
        self.resolver = RateResolver(RateHistory(snapshot.rates), snapshot.employees)
        self.calculator = PaymentCalculator(
            self.resolver,
            snapshot.services,
            working_calendar or WeekdayPatternCalendar(),
        )
        self.valuation = LeaveValuationResolver(self.calculator, snapshot.entries, self.leave_pay_policy)
        self.pipeline = SavePipeline(
            snapshot,
            self.calculator,
            self.valuation,
            self.leave_policy,
            self.leave_pay_policy,
        )
        self.aggregator = PeriodAggregator(self.calculator, self.valuation)

    def _employee(self, employee_id: UUID, operation: str) -> Employee:
        employee = self.snapshot.employee(employee_id)
        if employee is None:
            raise SnapshotError(employee_id, operation)
        return employee

    def resolve_rate(
        self,
        employee_id: UUID,
        as_of_date: date,
        service_context_id: UUID | None = None,
    ) -> RateResolution:
        return self.resolver.resolve(employee_id, as_of_date, service_context_id)

    def compute_entry_amount(self, entry: TimeEntry) -> EntryAmount:
        """Value one entry; leave of non-salaried employees goes through valuation."""
        employee = self._employee(entry.employee_id, "compute_entry_amount")
        if entry.kind is EntryKind.LEAVE:
            return self.valuation.value_leave_entry(entry, employee)
        return self.calculator.compute_amount(entry, employee)

    def value_leave_day(self, employee_id: UUID, day: date) -> LeaveDayValue:
        return self.valuation.value_leave_day(employee_id, day)

    def validate_and_prepare_save(self, request: SaveRequest) -> SaveOutcome:
        return self.pipeline.prepare(request)

    def prepare_batch(self, requests: Iterable[SaveRequest]) -> SaveOutcome:
        return self.pipeline.prepare_batch(requests)

    def aggregate_period(
        self,
        start: date,
        end: date,
        filters: PeriodFilters | None = None,
    ) -> PeriodTotals:
        if end < start:
            raise ValueError(f"Period end {end} is before start {start}")
        return self.aggregator.aggregate(
            self.snapshot.entries,
            self.snapshot.employees,
            start,
            end,
            filters,
        )

    def leave_summary(self, employee_id: UUID, as_of: date) -> LeaveSummary:
        employee = self._employee(employee_id, "leave_summary")
        return summarize_leave(
            employee,
            self.snapshot.ledger_for(employee_id),
            self.leave_policy,
            as_of,
        )

    def leave_ledger(self, employee_id: UUID, as_of: date) -> LeaveLedger:
        """The ledger for `as_of`'s year, opened with that year's quota and carry."""
        summary = self.leave_summary(employee_id, as_of)
        return LeaveLedger(
            employee_id,
            initial_allowance=summary.quota,
            policy=self.leave_policy,
            entries=[e for e in self.snapshot.ledger_for(employee_id) if e.effective_date.year == as_of.year],
        )

    def leave_balance(self, employee_id: UUID, as_of: date) -> LeaveBalance:
        summary = self.leave_summary(employee_id, as_of)
        employee = self._employee(employee_id, "leave_balance")
        if employee.is_before_start(as_of):
            balance = Decimal("0")
        else:
            balance = self.leave_ledger(employee_id, as_of).balance(as_of)
        return LeaveBalance(employee_id=employee_id, as_of=as_of, balance=balance, summary=summary)

    def holiday_for(self, day: date) -> HolidayRule | None:
        return self.leave_policy.find_holiday(day)
