"""Converts one time entry into a monetary amount."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable
from uuid import UUID

from timesheet_engine.calculators.line_builder import EntryLineBuilder
from timesheet_engine.calculators.rate_resolver import RateResolution, RateResolver
from timesheet_engine.calculators.types import (
    GENERIC_SERVICE_CONTEXT_ID,
    Employee,
    EmploymentType,
    EntryKind,
    PaymentModel,
    RateReason,
    ServiceContext,
    TimeEntry,
)
from timesheet_engine.calculators.working_days import WeekdayPatternCalendar, WorkingDayCalendar

ZERO = Decimal("0")


@dataclass(frozen=True)
class EntryAmount:
    """Unrounded amount for one entry.

    `reason` is set whenever the amount is a soft-fail zero; callers surface
    it as a warning.
    """

    amount: Decimal
    rate_used: Decimal | None = None
    reason: RateReason | None = None
    quantity: Decimal | None = None

    @property
    def rounded(self) -> Decimal:
        return EntryLineBuilder.round_to_cents(self.amount)

    @classmethod
    def zero(cls, reason: RateReason, rate_used: Decimal | None = None) -> EntryAmount:
        return cls(amount=ZERO, rate_used=rate_used, reason=reason)


@dataclass(frozen=True)
class DailyRate:
    """Salaried daily rate for one month."""

    amount: Decimal
    monthly_rate: Decimal
    working_days: int
    reason: RateReason | None = None

    @property
    def is_resolved(self) -> bool:
        return self.reason is None and self.amount > 0


class PaymentCalculator:
    """Values time entries by employment type and entry kind.

    Formulas:
    - hourly, hours: hours x rate (generic context)
    - global, hours: one daily rate per day, recorded hours are display only
    - global, leave: override when positive, else daily rate; x leave fraction
    - instructor, session: meetings x rate, or meetings x students x rate,
      with the rate of the specific service context
    - adjustment: the stored signed amount, no rate lookup

    An unresolved rate gives amount 0 plus the resolver's reason.
    """

    def __init__(
        self,
        resolver: RateResolver,
        services: dict[UUID, ServiceContext],
        working_calendar: WorkingDayCalendar | None = None,
    ):
        self.resolver = resolver
        self.services = services
        self.working_calendar = working_calendar or WeekdayPatternCalendar()
        self._dispatch: dict[EmploymentType, Callable[[TimeEntry, Employee], EntryAmount]] = {
            EmploymentType.HOURLY: self._hourly,
            EmploymentType.GLOBAL: self._global,
            EmploymentType.INSTRUCTOR: self._instructor,
        }
        missing = set(EmploymentType) - set(self._dispatch)
        if missing:
            raise RuntimeError(f"No payment formula for employment types: {sorted(missing)}")

    def compute_amount(self, entry: TimeEntry, employee: Employee) -> EntryAmount:
        """Compute the unrounded amount owed for one entry."""
        if entry.kind is EntryKind.ADJUSTMENT:
            return EntryAmount(amount=entry.adjustment_amount or ZERO)
        return self._dispatch[employee.employment_type](entry, employee)

    def daily_rate(self, employee: Employee, day: date) -> DailyRate:
        """monthly_rate x employment_scope / working days in the month."""
        resolution = self.resolver.resolve_for_employee(employee, day, GENERIC_SERVICE_CONTEXT_ID)
        days = self.working_calendar.working_days_in_month(employee, day.year, day.month)
        if not resolution.is_resolved:
            return DailyRate(ZERO, resolution.rate, days, resolution.reason or RateReason.NO_RATE_DEFINED)
        if days <= 0:
            return DailyRate(ZERO, resolution.rate, days, RateReason.NO_WORKING_DAYS)

        monthly = resolution.rate
        if employee.employment_scope is not None and employee.employment_scope > 0:
            monthly = monthly * employee.employment_scope
        return DailyRate(monthly / days, resolution.rate, days)

    def session_hours(self, entry: TimeEntry) -> Decimal:
        """Hours represented by a session entry (duration x meetings)."""
        service = self.services.get(entry.service_context_id) if entry.service_context_id else None
        if service is None:
            return ZERO
        return Decimal(service.duration_minutes) / Decimal("60") * Decimal(entry.sessions_count or 0)

    def _hourly(self, entry: TimeEntry, employee: Employee) -> EntryAmount:
        if entry.kind is not EntryKind.HOURS:
            return EntryAmount.zero(RateReason.UNSUPPORTED_ENTRY)
        resolution = self.resolver.resolve_for_employee(employee, entry.entry_date)
        hours = entry.hours or ZERO
        if not resolution.is_resolved:
            return self._unresolved(resolution, hours)
        return EntryAmount(amount=hours * resolution.rate, rate_used=resolution.rate, quantity=hours)

    def _global(self, entry: TimeEntry, employee: Employee) -> EntryAmount:
        if entry.kind is EntryKind.HOURS:
            daily = self.daily_rate(employee, entry.entry_date)
            if not daily.is_resolved:
                return EntryAmount.zero(daily.reason or RateReason.NO_RATE_DEFINED)
            return EntryAmount(amount=daily.amount, rate_used=daily.amount, quantity=Decimal("1"))

        if entry.kind is EntryKind.LEAVE:
            if entry.leave_subtype is None or not entry.leave_subtype.is_payable or not entry.payable:
                return EntryAmount(amount=ZERO, quantity=entry.leave_fraction)
            override = entry.leave_value_override
            if override is not None and override.is_finite() and override > 0:
                return EntryAmount(
                    amount=override * entry.leave_fraction,
                    rate_used=override,
                    quantity=entry.leave_fraction,
                )
            daily = self.daily_rate(employee, entry.entry_date)
            if not daily.is_resolved:
                return EntryAmount.zero(daily.reason or RateReason.NO_RATE_DEFINED)
            return EntryAmount(
                amount=daily.amount * entry.leave_fraction,
                rate_used=daily.amount,
                quantity=entry.leave_fraction,
            )

        return EntryAmount.zero(RateReason.UNSUPPORTED_ENTRY)

    def _instructor(self, entry: TimeEntry, employee: Employee) -> EntryAmount:
        if entry.kind is not EntryKind.SESSION:
            return EntryAmount.zero(RateReason.UNSUPPORTED_ENTRY)

        service = self.services.get(entry.service_context_id) if entry.service_context_id else None
        if service is None:
            return EntryAmount.zero(RateReason.UNKNOWN_SERVICE)

        resolution = self.resolver.resolve_for_employee(
            employee, entry.entry_date, service.service_context_id
        )
        meetings = Decimal(entry.sessions_count or 0)
        if not resolution.is_resolved:
            return self._unresolved(resolution, meetings)

        if service.payment_model is PaymentModel.PER_STUDENT:
            quantity = meetings * Decimal(entry.students_count or 0)
        else:
            quantity = meetings
        return EntryAmount(amount=quantity * resolution.rate, rate_used=resolution.rate, quantity=quantity)

    @staticmethod
    def _unresolved(resolution: RateResolution, quantity: Decimal) -> EntryAmount:
        return EntryAmount(
            amount=ZERO,
            rate_used=resolution.rate,
            reason=resolution.reason or RateReason.NO_RATE_DEFINED,
            quantity=quantity,
        )
