"""Idempotent commit service for prepared time entries and ledger entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_engine.calculators.line_builder import EntryLineBuilder
from timesheet_engine.calculators.types import EntryStatus, LeaveLedgerEntry, LedgerEntryKind, TimeEntry
from timesheet_engine.models import LeaveLedgerEntry as LedgerRow
from timesheet_engine.models import TimeEntry as TimeEntryRow
from timesheet_engine.services.save_pipeline import SavePrepared
from timesheet_engine.services.state_machine import SaveStateMachine, SaveStatus

logger = logging.getLogger(__name__)


class IdempotencyConflictError(Exception):
    """Raised when an idempotency key is already stored with different content."""

    def __init__(self, idempotency_key: str, existing_fingerprint: str, new_fingerprint: str):
        self.idempotency_key = idempotency_key
        self.existing_fingerprint = existing_fingerprint
        self.new_fingerprint = new_fingerprint
        super().__init__(
            f"Entries for {idempotency_key} exist with fingerprint {existing_fingerprint}, "
            f"but attempted to write {new_fingerprint}. Replace the existing entries instead."
        )


class LedgerWriteError(Exception):
    """Raised when ledger entries could not be written after their time entries."""

    def __init__(self, idempotency_keys: list[str], cause: Exception):
        self.idempotency_keys = idempotency_keys
        self.cause = cause
        super().__init__(f"Leave ledger write failed for {', '.join(idempotency_keys)}: {cause}")


@dataclass(frozen=True)
class CommitResult:
    """What a commit actually wrote."""

    written_entry_ids: tuple[UUID, ...]
    skipped_keys: tuple[str, ...]
    ledger_entry_ids: tuple[UUID, ...]
    trashed_entry_ids: tuple[UUID, ...]
    status: SaveStatus = SaveStatus.COMMITTED

    @property
    def is_noop(self) -> bool:
        return not self.written_entry_ids and not self.ledger_entry_ids and not self.trashed_entry_ids


class CommitService:
    """Persists a SavePrepared payload.

    Key invariants:
    1. An idempotency key already stored with the same fingerprint is skipped
    2. A stored key with a different fingerprint aborts the commit
    3. Replaced entries are trashed, never deleted, and their ledger usage reversed
    4. Time entries are flushed before their ledger entries; if the ledger
       write fails the transaction is rolled back so no time entry is left
       without its ledger entry
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self, prepared: SavePrepared) -> CommitResult:
        """Write a prepared payload in the session's transaction.

        Raises:
            InvalidTransitionError: If the payload is not in validated status
            IdempotencyConflictError: If a key exists with a different fingerprint
            LedgerWriteError: If the ledger entries could not be written
        """
        machine = SaveStateMachine(prepared.status)
        SaveStateMachine.validate_transition(machine.status, SaveStatus.COMMITTED)

        trashed = await self._trash(prepared.replaced_entry_ids)

        to_write: list[str] = []
        skipped: list[str] = []
        for key in prepared.idempotency_keys:
            fingerprint = prepared.fingerprints[key]
            existing = await self._stored_fingerprints(key)
            if not existing:
                to_write.append(key)
            elif existing == {fingerprint}:
                skipped.append(key)
            else:
                stored = sorted(existing - {fingerprint})[0]
                raise IdempotencyConflictError(key, stored, fingerprint)

        entries = [e for key in to_write for e in prepared.entries_for_key(key)]
        for entry in entries:
            key = EntryLineBuilder.idempotency_key(entry.employee_id, entry.entry_date, entry.entry_type)
            self.session.add(self._entry_row(entry, key, prepared.fingerprints[key]))
        await self.session.flush()

        written_ids = {e.entry_id for e in entries}
        ledger = await self._ledger_to_write(prepared.ledger_entries, written_ids, set(trashed))
        if ledger:
            try:
                self.session.add_all([self._ledger_row(e) for e in ledger])
                await self.session.flush()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.exception(
                    "Leave ledger write failed; rolled back %d time entries for %s",
                    len(entries),
                    ", ".join(to_write),
                )
                raise LedgerWriteError(to_write, exc) from exc

        machine.advance(SaveStatus.COMMITTED)
        if skipped:
            logger.info("Skipped already committed keys: %s", ", ".join(skipped))
        return CommitResult(
            written_entry_ids=tuple(e.entry_id for e in entries),
            skipped_keys=tuple(skipped),
            ledger_entry_ids=tuple(e.entry_id for e in ledger if e.entry_id is not None),
            trashed_entry_ids=tuple(trashed),
            status=machine.status,
        )

    async def _trash(self, entry_ids: tuple[UUID, ...]) -> list[UUID]:
        if not entry_ids:
            return []
        result = await self.session.execute(
            select(TimeEntryRow.time_entry_id).where(
                TimeEntryRow.time_entry_id.in_(entry_ids),
                TimeEntryRow.status == EntryStatus.ACTIVE.value,
            )
        )
        active = list(result.scalars().all())
        if active:
            await self.session.execute(
                update(TimeEntryRow)
                .where(TimeEntryRow.time_entry_id.in_(active))
                .values(status=EntryStatus.TRASHED.value, deleted_at=datetime.now(timezone.utc))
            )
        return active

    async def _stored_fingerprints(self, key: str) -> set[str]:
        result = await self.session.execute(
            select(TimeEntryRow.group_fingerprint)
            .where(
                TimeEntryRow.idempotency_key == key,
                TimeEntryRow.status == EntryStatus.ACTIVE.value,
                TimeEntryRow.deleted_at.is_(None),
            )
            .distinct()
        )
        return set(result.scalars().all())

    async def _ledger_to_write(
        self,
        ledger: tuple[LeaveLedgerEntry, ...],
        written_ids: set[UUID],
        trashed_ids: set[UUID],
    ) -> list[LeaveLedgerEntry]:
        candidates = [
            e
            for e in ledger
            if e.time_entry_id in written_ids
            or (e.kind is LedgerEntryKind.REVERSAL and e.time_entry_id in trashed_ids)
        ]
        keys = [e.idempotency_key for e in candidates if e.idempotency_key]
        if not keys:
            return candidates
        result = await self.session.execute(
            select(LedgerRow.idempotency_key).where(LedgerRow.idempotency_key.in_(keys))
        )
        stored = set(result.scalars().all())
        return [e for e in candidates if e.idempotency_key not in stored]

    @staticmethod
    def _entry_row(entry: TimeEntry, key: str, fingerprint: str) -> TimeEntryRow:
        return TimeEntryRow(
            time_entry_id=entry.entry_id,
            employee_id=entry.employee_id,
            entry_date=entry.entry_date,
            kind=entry.kind.value,
            hours=entry.hours,
            sessions_count=entry.sessions_count,
            students_count=entry.students_count,
            service_context_id=entry.service_context_id,
            leave_subtype=entry.leave_subtype.value if entry.leave_subtype else None,
            leave_fraction=entry.leave_fraction,
            adjustment_amount=entry.adjustment_amount,
            leave_value_override=entry.leave_value_override,
            rate_used=entry.rate_used,
            total_payment=entry.total_payment,
            payable=entry.payable,
            notes=entry.notes,
            status=EntryStatus.ACTIVE.value,
            idempotency_key=key,
            group_fingerprint=fingerprint,
        )

    @staticmethod
    def _ledger_row(entry: LeaveLedgerEntry) -> LedgerRow:
        row = LedgerRow(
            employee_id=entry.employee_id,
            effective_date=entry.effective_date,
            delta=entry.delta,
            kind=entry.kind.value,
            time_entry_id=entry.time_entry_id,
            idempotency_key=entry.idempotency_key,
            notes=entry.notes,
        )
        if entry.entry_id is not None:
            row.leave_ledger_entry_id = entry.entry_id
        return row
