"""Pydantic schemas for API request/response models."""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from timesheet_engine.calculators.types import (
    EmploymentType,
    FullDay,
    HalfDay,
    LeaveHalf,
    LeaveSegment,
    LeaveSubtype,
    TimeEntry,
    WorkHalf,
    parse_entry_type,
)
from timesheet_engine.services.save_pipeline import SaveRequest


# ============================================================================
# Rate schemas
# ============================================================================


class RateResolveRequest(BaseModel):
    """Schema for a rate lookup."""

    employee_id: UUID
    as_of_date: date
    service_context_id: UUID | None = None


class RateResolveResponse(BaseModel):
    """Schema for a resolved (or degraded) rate."""

    model_config = ConfigDict(from_attributes=True)

    rate: Decimal
    effective_date: date | None = None
    reason: str | None = None
    service_context_id: UUID | None = None


# ============================================================================
# Leave schemas
# ============================================================================


class LeaveValueRequest(BaseModel):
    """Schema for valuing one leave day."""

    employee_id: UUID
    day: date


class LeaveValueResponse(BaseModel):
    """Schema for a leave day value."""

    amount: Decimal
    used_fallback_rate: bool
    method: str | None = None
    insufficient_data: bool = False
    pre_start: bool = False
    reason: str | None = None


class LeaveBalanceResponse(BaseModel):
    """Schema for an employee's leave position."""

    employee_id: UUID
    as_of: date
    balance: Decimal
    remaining: Decimal
    used: Decimal
    quota: Decimal
    carry_in: Decimal
    year: int
    holiday: str | None = None


# ============================================================================
# Save schemas
# ============================================================================


class TimeEntryInput(BaseModel):
    """One work or adjustment entry in a save request.

    `entry_type` accepts the entry kinds and the legacy type tokens.
    """

    entry_type: str = "hours"
    hours: Decimal | None = None
    sessions_count: int | None = None
    students_count: int | None = None
    service_context_id: UUID | None = None
    adjustment_amount: Decimal | None = None
    notes: str | None = None

    @field_validator("entry_type")
    @classmethod
    def known_entry_type(cls, value: str) -> str:
        parse_entry_type(value)
        return value

    def to_entry(self, employee_id: UUID, entry_date: date) -> TimeEntry:
        kind, subtype, fraction = parse_entry_type(self.entry_type)
        return TimeEntry(
            entry_id=uuid4(),
            employee_id=employee_id,
            entry_date=entry_date,
            kind=kind,
            hours=self.hours,
            sessions_count=self.sessions_count,
            students_count=self.students_count,
            service_context_id=self.service_context_id,
            leave_subtype=subtype,
            leave_fraction=fraction,
            adjustment_amount=self.adjustment_amount,
            notes=self.notes,
        )


class LeaveInput(BaseModel):
    """Leave requested for the day.

    A half day may pair with a second leave half or with work segments.
    """

    subtype: LeaveSubtype
    half_day: bool = False
    companion_subtype: LeaveSubtype | None = None
    companion_work: list[TimeEntryInput] = Field(default_factory=list)

    def to_segment(self, employee_id: UUID, entry_date: date) -> LeaveSegment:
        if not self.half_day:
            return FullDay(self.subtype)
        if self.companion_subtype is not None:
            return HalfDay(self.subtype, LeaveHalf(self.companion_subtype))
        if self.companion_work:
            segments = tuple(w.to_entry(employee_id, entry_date) for w in self.companion_work)
            return HalfDay(self.subtype, WorkHalf(segments))
        return HalfDay(self.subtype)


class SaveRequestInput(BaseModel):
    """Entries for one employee on one date."""

    employee_id: UUID
    entry_date: date
    work: list[TimeEntryInput] = Field(default_factory=list)
    leave: LeaveInput | None = None
    leave_value_override: Decimal | None = None
    replace_entry_ids: list[UUID] = Field(default_factory=list)
    notes: str | None = None

    def to_request(self) -> SaveRequest:
        return SaveRequest(
            employee_id=self.employee_id,
            entry_date=self.entry_date,
            work=tuple(w.to_entry(self.employee_id, self.entry_date) for w in self.work),
            leave=self.leave.to_segment(self.employee_id, self.entry_date) if self.leave else None,
            leave_value_override=self.leave_value_override,
            replace_entry_ids=tuple(self.replace_entry_ids),
            notes=self.notes,
        )


class SaveBatchRequest(BaseModel):
    """Schema for saving one or more employee days."""

    requests: list[SaveRequestInput] = Field(min_length=1)


class SaveCommittedResponse(BaseModel):
    """Schema for a committed save."""

    status: str = "committed"
    idempotency_keys: list[str]
    written_entry_ids: list[UUID]
    skipped_keys: list[str]
    trashed_entry_ids: list[UUID]
    total_payment: Decimal
    warnings: list[str]
    used_fallback_rate: bool
    override_applied: bool


class ConfirmationItemResponse(BaseModel):
    """A leave day awaiting an override amount."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    entry_date: date
    fallback_value: Decimal
    fraction: Decimal
    reason: str | None = None


class NeedsConfirmationResponse(BaseModel):
    """Schema for a save that requires an override amount."""

    status: str = "needs_confirmation"
    items: list[ConfirmationItemResponse]


class RejectionResponse(BaseModel):
    """One offending employee/date."""

    kind: str
    employee_id: UUID
    entry_date: date
    detail: str


class SaveRejectedResponse(BaseModel):
    """Schema for a rejected save."""

    status: str = "rejected"
    rejections: list[RejectionResponse]


# ============================================================================
# Report schemas
# ============================================================================


class PeriodReportRequest(BaseModel):
    """Schema for period totals with optional filters."""

    start: date
    end: date
    employee_ids: list[UUID] | None = None
    employment_types: list[EmploymentType] | None = None
    service_context_ids: list[UUID] | None = None
    employment_scopes: list[Decimal] | None = None


class AdjustmentBucketsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    credit: Decimal
    debit: Decimal
    net: Decimal


class EmployeePeriodResponse(BaseModel):
    """One employee's period totals."""

    model_config = ConfigDict(from_attributes=True)

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


class PreStartFlagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    entry_date: date
    entry_id: UUID


class PeriodWarningResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    entry_date: date
    reason: str


class PeriodDiagnosticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unique_paid_days: int
    paid_leave_days: Decimal
    adjustments_sum: Decimal


class PeriodReportResponse(BaseModel):
    """Schema for period totals."""

    model_config = ConfigDict(from_attributes=True)

    start: date
    end: date
    total_pay: Decimal
    total_hours: Decimal
    total_sessions: int
    per_employee: list[EmployeePeriodResponse]
    adjustments: AdjustmentBucketsResponse
    pre_start: list[PreStartFlagResponse]
    warnings: list[PeriodWarningResponse]
    diagnostics: PeriodDiagnosticsResponse


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None
