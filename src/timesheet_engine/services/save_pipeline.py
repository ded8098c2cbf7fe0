"""Save pipeline: validate a day's entries and prepare a commit-ready payload.

Each (employee, date) attempt runs through SaveStateMachine:

    draft → validated → committed   (commit happens in CommitService)
    draft → rejected

The pipeline never writes. It returns one of:
- SavePrepared: time entries, paired ledger entries, idempotency keys
- NeedsConfirmation: leave would be valued from a fallback rate; retry the
  same request with `leave_value_override`
- SaveRejected: every offending employee/date
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Union
from uuid import UUID, uuid4

from timesheet_engine.calculators.leave_valuation import LeaveValuationResolver
from timesheet_engine.calculators.line_builder import EntryLineBuilder
from timesheet_engine.calculators.payment_calculator import EntryAmount, PaymentCalculator
from timesheet_engine.calculators.types import (
    EngineSnapshot,
    Employee,
    EmploymentType,
    EntryKind,
    FullDay,
    HalfDay,
    LeaveHalf,
    LeaveLedgerEntry,
    LeaveSegment,
    LeaveSubtype,
    LedgerEntryKind,
    RateReason,
    TimeEntry,
    WorkHalf,
)
from timesheet_engine.policies import LeavePayPolicy, LeavePolicy
from timesheet_engine.services.conflict_validator import (
    ConflictValidator,
    Rejection,
    RejectionKind,
)
from timesheet_engine.services.leave_ledger import (
    ledger_entry_for,
    reversal_for,
    summarize_leave,
)
from timesheet_engine.services.state_machine import SaveStateMachine, SaveStatus

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class SaveRequest:
    """Entries to save for one employee on one date.

    `work` holds hours, session and adjustment entries. Leave is requested
    through `leave`; a half day's companion work goes in its WorkHalf.
    """

    employee_id: UUID
    entry_date: date
    work: tuple[TimeEntry, ...] = ()
    leave: LeaveSegment | None = None
    leave_value_override: Decimal | None = None
    replace_entry_ids: tuple[UUID, ...] = ()
    notes: str | None = None


@dataclass(frozen=True)
class ConfirmationItem:
    """A leave day awaiting an explicit override amount."""

    employee_id: UUID
    entry_date: date
    fallback_value: Decimal
    fraction: Decimal
    reason: RateReason | None = None


@dataclass(frozen=True)
class SavePrepared:
    """Commit-ready payload."""

    entries: tuple[TimeEntry, ...]
    ledger_entries: tuple[LeaveLedgerEntry, ...]
    fingerprints: dict[str, str]
    replaced_entry_ids: tuple[UUID, ...] = ()
    warnings: tuple[str, ...] = ()
    used_fallback_rate: bool = False
    override_applied: bool = False
    status: SaveStatus = SaveStatus.VALIDATED

    @property
    def idempotency_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self.fingerprints))

    @property
    def total_payment(self) -> Decimal:
        return sum((e.total_payment or ZERO for e in self.entries), ZERO)

    def entries_for_key(self, key: str) -> list[TimeEntry]:
        return [
            e
            for e in self.entries
            if EntryLineBuilder.idempotency_key(e.employee_id, e.entry_date, e.entry_type) == key
        ]


@dataclass(frozen=True)
class NeedsConfirmation:
    """Neither committed nor rejected; an override amount is required."""

    items: tuple[ConfirmationItem, ...]


@dataclass(frozen=True)
class SaveRejected:
    """Hard validation failure listing every offender."""

    rejections: tuple[Rejection, ...] = field(default_factory=tuple)
    status: SaveStatus = SaveStatus.REJECTED

    @property
    def offenders(self) -> list[tuple[UUID, date]]:
        seen: list[tuple[UUID, date]] = []
        for rejection in self.rejections:
            key = (rejection.employee_id, rejection.entry_date)
            if key not in seen:
                seen.append(key)
        return seen


SaveOutcome = Union[SavePrepared, NeedsConfirmation, SaveRejected]


class SavePipeline:
    """Validates save requests against a snapshot and prepares payloads."""

    def __init__(
        self,
        snapshot: EngineSnapshot,
        calculator: PaymentCalculator,
        valuation: LeaveValuationResolver,
        leave_policy: LeavePolicy | None = None,
        leave_pay_policy: LeavePayPolicy | None = None,
    ):
        self.snapshot = snapshot
        self.calculator = calculator
        self.valuation = valuation
        self.leave_policy = leave_policy or LeavePolicy()
        self.leave_pay_policy = leave_pay_policy or LeavePayPolicy()
        self.validator = ConflictValidator(snapshot.services, self.leave_policy)

    def prepare(self, request: SaveRequest) -> SaveOutcome:
        """Validate one request and build its payload."""
        return self._prepare(request, pending_ledger=(), pending_entries=())

    def prepare_batch(self, requests: Iterable[SaveRequest]) -> SaveOutcome:
        """Validate many requests; one rejection rejects the whole batch.

        Conflict and balance checks see the entries and ledger entries of
        earlier requests in the same batch. Two requests landing on the same
        idempotency key are rejected, never merged.
        """
        rejections: list[Rejection] = []
        confirmations: list[ConfirmationItem] = []
        prepared: list[SavePrepared] = []
        pending_ledger: list[LeaveLedgerEntry] = []
        pending_entries: list[TimeEntry] = []
        fingerprints: dict[str, str] = {}

        for request in requests:
            outcome = self._prepare(
                request,
                pending_ledger=tuple(pending_ledger),
                pending_entries=tuple(pending_entries),
            )
            if isinstance(outcome, SaveRejected):
                rejections.extend(outcome.rejections)
                continue
            if isinstance(outcome, NeedsConfirmation):
                confirmations.extend(outcome.items)
                continue

            duplicates = sorted(k for k in outcome.fingerprints if k in fingerprints)
            if duplicates:
                rejections.append(
                    Rejection(
                        RejectionKind.DUPLICATE_BATCH_KEY,
                        request.employee_id,
                        request.entry_date,
                        f"Batch already holds {', '.join(duplicates)}",
                    )
                )
                continue

            prepared.append(outcome)
            fingerprints.update(outcome.fingerprints)
            pending_ledger.extend(outcome.ledger_entries)
            pending_entries.extend(outcome.entries)

        if rejections:
            logger.info("Rejected batch save with %d offending entries", len(rejections))
            return SaveRejected(rejections=tuple(rejections))
        if confirmations:
            return NeedsConfirmation(items=tuple(confirmations))

        return SavePrepared(
            entries=tuple(e for p in prepared for e in p.entries),
            ledger_entries=tuple(le for p in prepared for le in p.ledger_entries),
            fingerprints=fingerprints,
            replaced_entry_ids=tuple(i for p in prepared for i in p.replaced_entry_ids),
            warnings=tuple(w for p in prepared for w in p.warnings),
            used_fallback_rate=any(p.used_fallback_rate for p in prepared),
            override_applied=any(p.override_applied for p in prepared),
        )

    def _prepare(
        self,
        request: SaveRequest,
        pending_ledger: tuple[LeaveLedgerEntry, ...],
        pending_entries: tuple[TimeEntry, ...],
    ) -> SaveOutcome:
        machine = SaveStateMachine()
        employee = self.snapshot.employee(request.employee_id)
        if employee is None:
            machine.advance(SaveStatus.REJECTED)
            return SaveRejected(
                rejections=(
                    Rejection(
                        RejectionKind.UNKNOWN_EMPLOYEE,
                        request.employee_id,
                        request.entry_date,
                        "Employee not found",
                    ),
                )
            )

        work = list(request.work)
        if isinstance(request.leave, HalfDay) and isinstance(request.leave.companion, WorkHalf):
            work.extend(request.leave.companion.segments)
        leave_entries = self._leave_entries(employee, request)

        replaced = set(request.replace_entry_ids)
        # Stored rows under the same group keys are a retry or an idempotency
        # conflict; CommitService tells the two apart.
        tokens = {e.entry_type for e in work + leave_entries}
        retried: set[UUID] = set()
        existing: list[TimeEntry] = []
        for e in self.snapshot.active_entries_for(employee.employee_id):
            if e.entry_id in replaced:
                continue
            if e.entry_date == request.entry_date and e.entry_type in tokens:
                retried.add(e.entry_id)
                continue
            existing.append(e)
        existing.extend(e for e in pending_entries if e.employee_id == employee.employee_id)

        rejections = self.validator.validate(
            employee,
            request.entry_date,
            work,
            request.leave,
            existing,
            request.leave_value_override,
        )

        reversals = self._reversals(replaced, request.entry_date)
        new_ledger = [ledger_entry_for(e) for e in leave_entries]

        rejections.extend(
            self._balance_rejections(employee, request, replaced | retried, pending_ledger, new_ledger)
        )

        if rejections:
            machine.advance(SaveStatus.REJECTED)
            logger.info(
                "Rejected save for employee %s on %s: %s",
                employee.employee_id,
                request.entry_date,
                ", ".join(r.kind.value for r in rejections),
            )
            return SaveRejected(rejections=tuple(rejections))

        priced: list[TimeEntry] = []
        warnings: list[str] = []
        used_fallback = False
        confirmations: list[ConfirmationItem] = []

        for entry in work:
            entry = replace(entry, employee_id=employee.employee_id, entry_date=request.entry_date)
            amount = self.calculator.compute_amount(entry, employee)
            if amount.reason is not None:
                warnings.append(amount.reason.value)
            priced.append(self._with_amount(entry, amount))

        for entry in leave_entries:
            amount, fallback, confirmation = self._price_leave(entry, employee, request)
            used_fallback = used_fallback or fallback
            if confirmation is not None:
                confirmations.append(confirmation)
                continue
            if amount.reason is not None:
                warnings.append(amount.reason.value)
            priced.append(self._with_amount(entry, amount))

        if confirmations:
            return NeedsConfirmation(items=tuple(confirmations))

        machine.advance(SaveStatus.VALIDATED)
        return SavePrepared(
            entries=tuple(priced),
            ledger_entries=tuple(reversals + new_ledger),
            fingerprints=self._fingerprints(priced),
            replaced_entry_ids=tuple(request.replace_entry_ids),
            warnings=tuple(dict.fromkeys(warnings)),
            used_fallback_rate=used_fallback,
            override_applied=request.leave_value_override is not None and bool(leave_entries),
            status=machine.status,
        )

    def _leave_entries(self, employee: Employee, request: SaveRequest) -> list[TimeEntry]:
        leave = request.leave
        if leave is None:
            return []
        if isinstance(leave, FullDay):
            parts = [(leave.subtype, leave.fraction)]
        else:
            parts = [(leave.first, leave.fraction)]
            if isinstance(leave.companion, LeaveHalf):
                parts.append((leave.companion.subtype, leave.fraction))

        return [
            TimeEntry(
                entry_id=uuid4(),
                employee_id=employee.employee_id,
                entry_date=request.entry_date,
                kind=EntryKind.LEAVE,
                leave_subtype=subtype,
                leave_fraction=fraction,
                leave_value_override=request.leave_value_override,
                payable=subtype.is_payable,
                notes=request.notes,
            )
            for subtype, fraction in parts
        ]

    def _reversals(self, replaced: set[UUID], on_date: date) -> list[LeaveLedgerEntry]:
        if not replaced:
            return []
        reversed_ids = {
            e.time_entry_id
            for e in self.snapshot.ledger
            if e.kind is LedgerEntryKind.REVERSAL and e.time_entry_id in replaced
        }
        return [
            reversal_for(e, on_date)
            for e in self.snapshot.ledger
            if e.time_entry_id in replaced
            and e.time_entry_id not in reversed_ids
            and e.kind is not LedgerEntryKind.REVERSAL
        ]

    def _balance_rejections(
        self,
        employee: Employee,
        request: SaveRequest,
        excluded: set[UUID],
        pending_ledger: tuple[LeaveLedgerEntry, ...],
        new_ledger: list[LeaveLedgerEntry],
    ) -> list[Rejection]:
        delta = sum((e.delta for e in new_ledger), ZERO)
        if delta >= 0 or employee.is_before_start(request.entry_date):
            return []

        baseline_entries = [
            e
            for e in list(self.snapshot.ledger_for(employee.employee_id)) + list(pending_ledger)
            if e.employee_id == employee.employee_id and e.time_entry_id not in excluded
        ]
        # Reversals share time_entry_id with what they reverse, so both drop out together.
        summary = summarize_leave(employee, baseline_entries, self.leave_policy, request.entry_date)
        baseline = summary.remaining
        projected = summary.project(delta)

        policy = self.leave_policy
        if policy.allow_negative_balance:
            exceeded = projected < policy.negative_floor
        else:
            exceeded = baseline <= 0 or projected < 0

        if not exceeded:
            return []
        return [
            Rejection(
                RejectionKind.LEAVE_BALANCE_EXCEEDED,
                employee.employee_id,
                request.entry_date,
                f"Remaining {baseline} days, request uses {-delta}",
            )
        ]

    def _price_leave(
        self,
        entry: TimeEntry,
        employee: Employee,
        request: SaveRequest,
    ) -> tuple[EntryAmount, bool, ConfirmationItem | None]:
        if not entry.payable or entry.leave_subtype is LeaveSubtype.UNPAID:
            return EntryAmount(amount=ZERO, quantity=entry.leave_fraction), False, None

        amount = self.valuation.value_leave_entry(entry, employee)
        if request.leave_value_override is not None:
            return amount, False, None
        if employee.employment_type is EmploymentType.INSTRUCTOR:
            return amount, False, None

        day_value = self.valuation.value_for_employee(employee, entry.entry_date)
        if not day_value.used_fallback_rate:
            return amount, False, None

        if self.leave_pay_policy.confirm_fallback:
            return (
                amount,
                True,
                ConfirmationItem(
                    employee_id=employee.employee_id,
                    entry_date=entry.entry_date,
                    fallback_value=EntryLineBuilder.round_to_cents(day_value.amount * entry.leave_fraction),
                    fraction=entry.leave_fraction,
                    reason=day_value.reason,
                ),
            )
        return amount, True, None

    @staticmethod
    def _with_amount(entry: TimeEntry, amount: EntryAmount) -> TimeEntry:
        return replace(
            entry,
            rate_used=amount.rate_used,
            total_payment=amount.rounded,
        )

    @staticmethod
    def _fingerprints(entries: list[TimeEntry]) -> dict[str, str]:
        groups: dict[str, list[TimeEntry]] = {}
        for entry in entries:
            key = EntryLineBuilder.idempotency_key(entry.employee_id, entry.entry_date, entry.entry_type)
            groups.setdefault(key, []).append(entry)
        return {key: EntryLineBuilder.compute_group_fingerprint(group) for key, group in groups.items()}
