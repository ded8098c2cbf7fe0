"""Type definitions for the valuation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

# Rate scope shared by hourly and salaried employees, who have a single rate track.
GENERIC_SERVICE_CONTEXT_ID = UUID(int=0)

DEFAULT_WORKING_DAYS: tuple[str, ...] = ("SUN", "MON", "TUE", "WED", "THU")

FULL_DAY = Decimal("1")
HALF_DAY = Decimal("0.5")


class EmploymentType(str, Enum):
    """Employment types. Every calculator dispatch table is keyed by these."""

    HOURLY = "hourly"
    GLOBAL = "global"
    INSTRUCTOR = "instructor"

    @property
    def uses_generic_rate(self) -> bool:
        return self in (EmploymentType.HOURLY, EmploymentType.GLOBAL)


class EntryKind(str, Enum):
    """Time entry kinds."""

    HOURS = "hours"
    SESSION = "session"
    ADJUSTMENT = "adjustment"
    LEAVE = "leave"

    @property
    def is_work(self) -> bool:
        return self in (EntryKind.HOURS, EntryKind.SESSION)


class LeaveSubtype(str, Enum):
    """Who pays for a leave day."""

    EMPLOYEE_FUNDED = "employee_funded"
    SYSTEM_FUNDED = "system_funded"
    UNPAID = "unpaid"

    @property
    def is_payable(self) -> bool:
        return self is not LeaveSubtype.UNPAID


class EntryStatus(str, Enum):
    """Time entry lifecycle status."""

    ACTIVE = "active"
    TRASHED = "trashed"


class PaymentModel(str, Enum):
    """How a service context is billed."""

    PER_MEETING = "per_meeting"
    PER_STUDENT = "per_student"


class LedgerEntryKind(str, Enum):
    """Leave ledger entry kinds."""

    ALLOCATION = "allocation"
    CARRYOVER = "carryover"
    ADJUSTMENT = "adjustment"
    USAGE_EMPLOYEE_FUNDED = "usage_employee_funded"
    USAGE_SYSTEM_FUNDED = "usage_system_funded"
    USAGE_UNPAID = "usage_unpaid"
    REVERSAL = "reversal"
    PAYOUT = "payout"


class DebitCategory(str, Enum):
    """How a ledger entry is categorized for reporting."""

    GRANT = "grant"
    EMPLOYEE_FUNDED = "employee_funded"
    SYSTEM_FUNDED = "system_funded"
    UNPAID = "unpaid"
    CORRECTION = "correction"


class RateReason(str, Enum):
    """Machine-readable reasons for a degraded (zero) result."""

    NOT_YET_EMPLOYED = "not_yet_employed"
    NO_RATE_DEFINED = "no_rate_defined"
    UNKNOWN_EMPLOYEE = "unknown_employee"
    UNKNOWN_SERVICE = "unknown_service"
    NO_WORKING_DAYS = "no_working_days"
    UNSUPPORTED_ENTRY = "unsupported_entry"
    LEAVE_VALUATION_NOT_APPLICABLE = "leave_valuation_not_applicable"


# Legacy entry-type tokens: token -> (kind, leave subtype, leave fraction)
_ENTRY_TYPE_TOKENS: dict[str, tuple[EntryKind, LeaveSubtype | None, Decimal]] = {
    "hours": (EntryKind.HOURS, None, FULL_DAY),
    "session": (EntryKind.SESSION, None, FULL_DAY),
    "adjustment": (EntryKind.ADJUSTMENT, None, FULL_DAY),
    "leave_employee_paid": (EntryKind.LEAVE, LeaveSubtype.EMPLOYEE_FUNDED, FULL_DAY),
    "leave_system_paid": (EntryKind.LEAVE, LeaveSubtype.SYSTEM_FUNDED, FULL_DAY),
    "paid_leave": (EntryKind.LEAVE, LeaveSubtype.SYSTEM_FUNDED, FULL_DAY),
    "leave_unpaid": (EntryKind.LEAVE, LeaveSubtype.UNPAID, FULL_DAY),
    "leave": (EntryKind.LEAVE, LeaveSubtype.UNPAID, FULL_DAY),
    "leave_half_day": (EntryKind.LEAVE, LeaveSubtype.EMPLOYEE_FUNDED, HALF_DAY),
}


def parse_entry_type(token: str) -> tuple[EntryKind, LeaveSubtype | None, Decimal]:
    """Map a stored entry-type token to (kind, leave subtype, fraction).

    Raises:
        ValueError: If the token is not recognized
    """
    normalized = (token or "").strip().lower()
    try:
        return _ENTRY_TYPE_TOKENS[normalized]
    except KeyError:
        raise ValueError(f"Unknown entry type: {token!r}") from None


@dataclass(frozen=True)
class Employee:
    """Read-only employee record consumed by the engine."""

    employee_id: UUID
    employment_type: EmploymentType
    start_date: date | None = None
    is_active: bool = True
    employment_scope: Decimal | None = None
    annual_leave_days: Decimal = Decimal("0")
    name: str = ""
    working_days: tuple[str, ...] = DEFAULT_WORKING_DAYS
    leave_pay_method: str | None = None
    leave_fixed_day_rate: Decimal | None = None

    def is_before_start(self, day: date) -> bool:
        """True when `day` precedes the employment start date."""
        return self.start_date is not None and day < self.start_date


@dataclass(frozen=True)
class ServiceContext:
    """A billable activity for per-session employees."""

    service_context_id: UUID
    name: str
    duration_minutes: int = 60
    payment_model: PaymentModel = PaymentModel.PER_MEETING


@dataclass(frozen=True)
class RateRecord:
    """Immutable effective-dated rate.

    `sequence` orders records written for the same effective date; the higher
    value was written later.
    """

    employee_id: UUID
    service_context_id: UUID
    effective_date: date
    rate: Decimal
    notes: str | None = None
    sequence: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True)
class TimeEntry:
    """A stored or candidate time entry."""

    entry_id: UUID
    employee_id: UUID
    entry_date: date
    kind: EntryKind
    hours: Decimal | None = None
    sessions_count: int | None = None
    students_count: int | None = None
    service_context_id: UUID | None = None
    leave_subtype: LeaveSubtype | None = None
    leave_fraction: Decimal = FULL_DAY
    adjustment_amount: Decimal | None = None
    leave_value_override: Decimal | None = None
    rate_used: Decimal | None = None
    total_payment: Decimal | None = None
    payable: bool = True
    notes: str | None = None
    status: EntryStatus = EntryStatus.ACTIVE
    deleted_at: datetime | None = None

    @property
    def is_leave(self) -> bool:
        return self.kind is EntryKind.LEAVE

    @property
    def is_payable_leave(self) -> bool:
        """Leave that occupies the day (paid by anyone)."""
        return (
            self.kind is EntryKind.LEAVE
            and self.payable
            and self.leave_subtype is not None
            and self.leave_subtype.is_payable
        )

    @property
    def is_half_day(self) -> bool:
        return self.kind is EntryKind.LEAVE and self.leave_fraction < FULL_DAY

    @property
    def entry_type(self) -> str:
        """Idempotency-key token for this entry's kind group."""
        if self.kind is EntryKind.LEAVE:
            return "leave"
        return self.kind.value


def is_active(entry: TimeEntry) -> bool:
    """The single visibility predicate: trashed entries are invisible everywhere."""
    return entry.status is EntryStatus.ACTIVE and entry.deleted_at is None


@dataclass(frozen=True)
class LeaveLedgerEntry:
    """Append-only signed-days delta."""

    employee_id: UUID
    effective_date: date
    delta: Decimal
    kind: LedgerEntryKind
    entry_id: UUID | None = None
    time_entry_id: UUID | None = None
    idempotency_key: str | None = None
    notes: str | None = None


# Half-day composition.


@dataclass(frozen=True)
class WorkHalf:
    """Work segments saved in the second half of a half-day."""

    segments: tuple[TimeEntry, ...]


@dataclass(frozen=True)
class LeaveHalf:
    """A second half-day leave segment of a (possibly) different subtype."""

    subtype: LeaveSubtype


HalfCompanion = Union[WorkHalf, LeaveHalf]


@dataclass(frozen=True)
class FullDay:
    """A full leave day of one subtype."""

    subtype: LeaveSubtype

    @property
    def fraction(self) -> Decimal:
        return FULL_DAY


@dataclass(frozen=True)
class HalfDay:
    """Half a leave day, optionally paired with a companion half."""

    first: LeaveSubtype
    companion: HalfCompanion | None = None

    @property
    def fraction(self) -> Decimal:
        return HALF_DAY


LeaveSegment = Union[FullDay, HalfDay]


@dataclass(frozen=True)
class EngineSnapshot:
    """Immutable view of everything one engine call needs.

    Built once per request by the persistence collaborator; the engine never
    mutates it and keeps no state between calls.
    """

    employees: dict[UUID, Employee] = field(default_factory=dict)
    services: dict[UUID, ServiceContext] = field(default_factory=dict)
    rates: tuple[RateRecord, ...] = ()
    entries: tuple[TimeEntry, ...] = ()
    ledger: tuple[LeaveLedgerEntry, ...] = ()

    def employee(self, employee_id: UUID) -> Employee | None:
        return self.employees.get(employee_id)

    def active_entries_for(self, employee_id: UUID) -> list[TimeEntry]:
        return [e for e in self.entries if e.employee_id == employee_id and is_active(e)]

    def ledger_for(self, employee_id: UUID) -> list[LeaveLedgerEntry]:
        return [e for e in self.ledger if e.employee_id == employee_id]

    def to_summary(self) -> dict[str, Any]:
        return {
            "employees": len(self.employees),
            "services": len(self.services),
            "rates": len(self.rates),
            "entries": len(self.entries),
            "ledger": len(self.ledger),
        }
