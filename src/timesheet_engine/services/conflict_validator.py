"""Validation rules for (employee, date) write attempts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from timesheet_engine.calculators.types import (
    FULL_DAY,
    Employee,
    EmploymentType,
    EntryKind,
    HalfDay,
    LeaveHalf,
    LeaveSegment,
    ServiceContext,
    TimeEntry,
    is_active,
)
from timesheet_engine.policies import LeavePolicy


class RejectionKind(str, Enum):
    """Hard validation failure kinds."""

    INVALID_START_DATE = "invalid_start_date"
    LEAVE_WORK_CONFLICT = "leave_work_conflict"
    LEAVE_DAY_OVERBOOKED = "leave_day_overbooked"
    MALFORMED_INPUT = "malformed_input"
    HALF_DAY_NOT_ALLOWED = "half_day_not_allowed"
    LEAVE_BALANCE_EXCEEDED = "leave_balance_exceeded"
    UNKNOWN_SERVICE = "unknown_service"
    UNKNOWN_EMPLOYEE = "unknown_employee"
    DUPLICATE_BATCH_KEY = "duplicate_batch_key"


@dataclass(frozen=True)
class Rejection:
    """One offending (employee, date) and why."""

    kind: RejectionKind
    employee_id: UUID
    entry_date: date
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind.value,
            "employee_id": str(self.employee_id),
            "date": self.entry_date.isoformat(),
            "detail": self.detail,
        }


def leave_credit(entries: Iterable[TimeEntry]) -> Decimal:
    """Payable leave fraction already booked on a day."""
    total = Decimal("0")
    for entry in entries:
        if entry.is_payable_leave:
            total += entry.leave_fraction
    return total


class ConflictValidator:
    """Checks one candidate day against the employee and existing entries.

    A day is either a leave day or a work day. The only mix allowed is the
    half-day path: work beside a half day of payable leave.
    """

    def __init__(self, services: dict[UUID, ServiceContext], policy: LeavePolicy | None = None):
        self.services = services
        self.policy = policy or LeavePolicy()

    def validate(
        self,
        employee: Employee,
        entry_date: date,
        work: Iterable[TimeEntry],
        leave: LeaveSegment | None,
        existing: Iterable[TimeEntry],
        leave_value_override: Decimal | None = None,
    ) -> list[Rejection]:
        """Return every rule the attempt breaks (empty when valid)."""
        work = list(work)
        day_existing = [
            e
            for e in existing
            if e.employee_id == employee.employee_id and e.entry_date == entry_date and is_active(e)
        ]
        rejections: list[Rejection] = []

        def reject(kind: RejectionKind, detail: str) -> None:
            rejections.append(Rejection(kind, employee.employee_id, entry_date, detail))

        if employee.is_before_start(entry_date):
            reject(
                RejectionKind.INVALID_START_DATE,
                f"{entry_date.isoformat()} is before start date {employee.start_date}",
            )

        for entry in work:
            for detail in self._malformed(employee, entry):
                reject(RejectionKind.MALFORMED_INPUT, detail)
            if (
                entry.kind is EntryKind.SESSION
                and entry.service_context_id is not None
                and entry.service_context_id not in self.services
            ):
                reject(RejectionKind.UNKNOWN_SERVICE, f"Unknown service {entry.service_context_id}")

        if leave_value_override is not None and (
            not leave_value_override.is_finite() or leave_value_override <= 0
        ):
            reject(RejectionKind.MALFORMED_INPUT, "Leave value override must be a positive amount")

        if isinstance(leave, HalfDay) and not self.policy.allow_half_day:
            reject(RejectionKind.HALF_DAY_NOT_ALLOWED, "Half-day leave is disabled by policy")

        new_work = [e for e in work if e.kind.is_work]
        existing_work = [e for e in day_existing if e.kind.is_work]
        existing_credit = leave_credit(day_existing)
        requested_credit = self._requested_credit(leave)

        if new_work and requested_credit >= FULL_DAY:
            reject(RejectionKind.LEAVE_WORK_CONFLICT, "Work and a full leave day on the same date")

        if new_work and existing_credit >= FULL_DAY:
            reject(RejectionKind.LEAVE_WORK_CONFLICT, "Payable leave already recorded for this date")

        if requested_credit > 0 and existing_work and not self._half_day_beside_work(leave):
            reject(RejectionKind.LEAVE_WORK_CONFLICT, "Work already recorded for this date")

        if requested_credit > 0 and existing_credit + requested_credit > FULL_DAY:
            reject(
                RejectionKind.LEAVE_DAY_OVERBOOKED,
                f"Leave credit would reach {existing_credit + requested_credit} days",
            )

        return rejections

    @staticmethod
    def _requested_credit(leave: LeaveSegment | None) -> Decimal:
        if leave is None:
            return Decimal("0")
        if isinstance(leave, HalfDay):
            credit = leave.fraction if leave.first.is_payable else Decimal("0")
            if isinstance(leave.companion, LeaveHalf) and leave.companion.subtype.is_payable:
                credit += leave.fraction
            return credit
        return leave.fraction if leave.subtype.is_payable else Decimal("0")

    @staticmethod
    def _half_day_beside_work(leave: LeaveSegment | None) -> bool:
        return isinstance(leave, HalfDay) and leave.companion is None

    def _malformed(self, employee: Employee, entry: TimeEntry) -> list[str]:
        problems: list[str] = []
        if entry.hours is not None and entry.hours < 0:
            problems.append("Hours cannot be negative")
        if entry.sessions_count is not None and entry.sessions_count < 0:
            problems.append("Meetings count cannot be negative")
        if entry.students_count is not None and entry.students_count < 0:
            problems.append("Students count cannot be negative")

        if entry.kind is EntryKind.ADJUSTMENT:
            if entry.adjustment_amount is None or entry.adjustment_amount == 0:
                problems.append("Adjustment amount must be non-zero")
            if not (entry.notes or "").strip():
                problems.append("Adjustment notes are required")
        elif entry.kind is EntryKind.SESSION:
            if employee.employment_type is not EmploymentType.INSTRUCTOR:
                problems.append("Sessions are only recorded for instructors")
            elif entry.service_context_id is None:
                problems.append("Session entry requires a service")
        elif entry.kind is EntryKind.HOURS:
            if employee.employment_type is EmploymentType.INSTRUCTOR:
                problems.append("Instructors record sessions, not hours")
            elif entry.hours is None and employee.employment_type is EmploymentType.HOURLY:
                problems.append("Hours entry requires hours")
        elif entry.kind is EntryKind.LEAVE:
            problems.append("Leave must be requested as a leave segment")
        return problems
