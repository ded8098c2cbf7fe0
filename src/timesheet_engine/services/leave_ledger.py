"""Leave balance ledger.

Append-only signed-day deltas per employee:
- Idempotent posting via idempotency_key
- Reversal-based corrections (entries are never edited or removed)
- Point-in-time balances and yearly summaries with carryover
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from timesheet_engine.calculators.line_builder import EntryLineBuilder
from timesheet_engine.calculators.types import (
    DebitCategory,
    Employee,
    LeaveLedgerEntry,
    LeaveSubtype,
    LedgerEntryKind,
    TimeEntry,
)
from timesheet_engine.policies import LeavePolicy

ZERO = Decimal("0")

_USAGE_KINDS: dict[LeaveSubtype, LedgerEntryKind] = {
    LeaveSubtype.EMPLOYEE_FUNDED: LedgerEntryKind.USAGE_EMPLOYEE_FUNDED,
    LeaveSubtype.SYSTEM_FUNDED: LedgerEntryKind.USAGE_SYSTEM_FUNDED,
    LeaveSubtype.UNPAID: LedgerEntryKind.USAGE_UNPAID,
}

_CATEGORIES: dict[LedgerEntryKind, DebitCategory] = {
    LedgerEntryKind.ALLOCATION: DebitCategory.GRANT,
    LedgerEntryKind.CARRYOVER: DebitCategory.GRANT,
    LedgerEntryKind.ADJUSTMENT: DebitCategory.CORRECTION,
    LedgerEntryKind.REVERSAL: DebitCategory.CORRECTION,
    LedgerEntryKind.PAYOUT: DebitCategory.EMPLOYEE_FUNDED,
    LedgerEntryKind.USAGE_EMPLOYEE_FUNDED: DebitCategory.EMPLOYEE_FUNDED,
    LedgerEntryKind.USAGE_SYSTEM_FUNDED: DebitCategory.SYSTEM_FUNDED,
    LedgerEntryKind.USAGE_UNPAID: DebitCategory.UNPAID,
}


def usage_kind(subtype: LeaveSubtype) -> LedgerEntryKind:
    return _USAGE_KINDS[subtype]


def leave_delta(subtype: LeaveSubtype, fraction: Decimal) -> Decimal:
    """Balance delta of one leave entry.

    Only employee-funded leave consumes balance; system-funded and unpaid
    leave are recorded with a zero delta.
    """
    if subtype is LeaveSubtype.EMPLOYEE_FUNDED:
        return -fraction
    return ZERO


def ledger_entry_for(entry: TimeEntry) -> LeaveLedgerEntry:
    """The ledger entry paired with a leave time entry."""
    if entry.leave_subtype is None:
        raise ValueError(f"Time entry {entry.entry_id} is not a leave entry")
    kind = usage_kind(entry.leave_subtype)
    return LeaveLedgerEntry(
        employee_id=entry.employee_id,
        effective_date=entry.entry_date,
        delta=leave_delta(entry.leave_subtype, entry.leave_fraction),
        kind=kind,
        entry_id=uuid4(),
        time_entry_id=entry.entry_id,
        idempotency_key=EntryLineBuilder.ledger_key(entry.entry_id, kind.value),
    )


def reversal_for(original: LeaveLedgerEntry, on_date: date | None = None) -> LeaveLedgerEntry:
    """An entry cancelling `original`'s delta."""
    return LeaveLedgerEntry(
        employee_id=original.employee_id,
        effective_date=on_date or original.effective_date,
        delta=-original.delta,
        kind=LedgerEntryKind.REVERSAL,
        entry_id=uuid4(),
        time_entry_id=original.time_entry_id,
        idempotency_key=f"reversal:{original.entry_id or original.idempotency_key}",
        notes=f"Reversal of {original.kind.value}",
    )


@dataclass(frozen=True)
class PostResult:
    """Result of a ledger post.

    `is_new` is False when the idempotency key was already posted and the
    existing entry was returned instead.
    """

    entry: LeaveLedgerEntry
    is_new: bool


class LeaveLedger:
    """Ordered balance-affecting entries for one employee.

    balance(d) = initial_allowance + sum(delta for entries dated <= d),
    clipped to the policy floor unless negative balances are allowed.
    """

    def __init__(
        self,
        employee_id: UUID,
        initial_allowance: Decimal = ZERO,
        policy: LeavePolicy | None = None,
        entries: Iterable[LeaveLedgerEntry] = (),
    ):
        self.employee_id = employee_id
        self.initial_allowance = initial_allowance
        self.policy = policy or LeavePolicy()
        self._entries: list[LeaveLedgerEntry] = []
        self._keys: dict[str, LeaveLedgerEntry] = {}
        for entry in entries:
            self.post(entry)

    @property
    def entries(self) -> tuple[LeaveLedgerEntry, ...]:
        return tuple(self._entries)

    def post(self, entry: LeaveLedgerEntry) -> PostResult:
        """Append an entry. Re-posting a known idempotency key is a no-op."""
        if entry.employee_id != self.employee_id:
            raise ValueError(
                f"Ledger for {self.employee_id} cannot accept entry for {entry.employee_id}"
            )
        if entry.idempotency_key is not None:
            existing = self._keys.get(entry.idempotency_key)
            if existing is not None:
                return PostResult(entry=existing, is_new=False)
            self._keys[entry.idempotency_key] = entry
        self._entries.append(entry)
        return PostResult(entry=entry, is_new=True)

    def reverse(self, original: LeaveLedgerEntry, on_date: date | None = None) -> PostResult:
        return self.post(reversal_for(original, on_date))

    def clip(self, raw: Decimal) -> Decimal:
        if self.policy.allow_negative_balance:
            return raw
        return max(raw, self.policy.negative_floor)

    def raw_balance(self, as_of: date) -> Decimal:
        total = self.initial_allowance
        for entry in self._entries:
            if entry.effective_date <= as_of:
                total += entry.delta
        return total

    def balance(self, as_of: date) -> Decimal:
        """Remaining balance at the end of `as_of`."""
        return self.clip(self.raw_balance(as_of))

    def running_balances(self) -> list[tuple[date, Decimal]]:
        """(date, balance) after each distinct entry date, in date order."""
        by_date: dict[date, Decimal] = {}
        for entry in self._entries:
            by_date[entry.effective_date] = by_date.get(entry.effective_date, ZERO) + entry.delta

        running = self.initial_allowance
        result: list[tuple[date, Decimal]] = []
        for day in sorted(by_date):
            running += by_date[day]
            result.append((day, self.clip(running)))
        return result

    @staticmethod
    def categorize(entry: LeaveLedgerEntry) -> DebitCategory:
        """How an entry is reported (grant, funded-by, unpaid, correction)."""
        return _CATEGORIES[entry.kind]

    def debits_by_category(
        self,
        start: date | None = None,
        end: date | None = None,
    ) -> dict[DebitCategory, Decimal]:
        """Net delta per category for entries dated in [start, end]."""
        totals: dict[DebitCategory, Decimal] = {c: ZERO for c in DebitCategory}
        for entry in self._entries:
            if start is not None and entry.effective_date < start:
                continue
            if end is not None and entry.effective_date > end:
                continue
            totals[self.categorize(entry)] += entry.delta
        return totals


@dataclass(frozen=True)
class LeaveSummary:
    """Yearly leave position as of a date."""

    remaining: Decimal
    used: Decimal
    quota: Decimal
    carry_in: Decimal
    allocations: Decimal
    adjustments: Decimal
    year: int

    def project(self, delta: Decimal) -> Decimal:
        """Remaining balance after applying `delta`."""
        return EntryLineBuilder.round_days(self.remaining + delta)

    @classmethod
    def empty(cls, year: int) -> LeaveSummary:
        return cls(ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, year)


def base_quota_for_year(employee: Employee, year: int) -> Decimal:
    """Annual entitlement, prorated by remaining days in the start year."""
    annual = employee.annual_leave_days or ZERO
    if not annual:
        return ZERO
    start = employee.start_date
    if start is None or start.year < year:
        return annual
    if start.year > year:
        return ZERO

    total_days = 366 if calendar.isleap(year) else 365
    remaining_days = (date(year, 12, 31) - start).days + 1
    if remaining_days <= 0:
        return ZERO
    return max(ZERO, annual * remaining_days / total_days)


def summarize_leave(
    employee: Employee,
    entries: Iterable[LeaveLedgerEntry],
    policy: LeavePolicy | None = None,
    as_of: date | None = None,
) -> LeaveSummary:
    """Walk the years from the start year to `as_of`'s year.

    Each year opens with its (prorated) quota plus the carry from the prior
    year; carry is max(0, min(balance, carryover_max_days)) when carryover
    is enabled and 0 otherwise. Entries in the target year count only up to
    `as_of`.
    """
    policy = policy or LeavePolicy()
    as_of = as_of or date.today()
    year = as_of.year

    if employee.is_before_start(as_of):
        return LeaveSummary.empty(year)

    own = [e for e in entries if e.employee_id == employee.employee_id]
    start_year = employee.start_date.year if employee.start_date else year
    carry = ZERO
    summary = LeaveSummary.empty(year)
    r = EntryLineBuilder.round_days

    for current in range(start_year, year + 1):
        year_entries = [
            e
            for e in own
            if e.effective_date.year == current and (current != year or e.effective_date <= as_of)
        ]
        base_quota = base_quota_for_year(employee, current)
        usage = sum((-e.delta for e in year_entries if e.delta < 0), ZERO)
        positive = sum((e.delta for e in year_entries if e.delta > 0), ZERO)
        total_delta = sum((e.delta for e in year_entries), ZERO)
        quota_with_carry = base_quota + carry
        balance = quota_with_carry + total_delta

        if current == year:
            summary = LeaveSummary(
                remaining=r(balance),
                used=r(usage),
                quota=r(quota_with_carry),
                carry_in=r(carry),
                allocations=r(base_quota + positive),
                adjustments=r(total_delta),
                year=year,
            )
        elif policy.carryover_enabled:
            carry = max(ZERO, min(balance, policy.carryover_max_days))
        else:
            carry = ZERO

    return summary
