"""Tests for save validation and payload preparation."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from builders import E1, E2, employee, hours, leave, ledger_entry, rate, snapshot
from timesheet_engine.calculators.engine import TimesheetEngine
from timesheet_engine.calculators.types import (
    EmploymentType,
    FullDay,
    HalfDay,
    LeaveSubtype,
    LedgerEntryKind,
    WorkHalf,
)
from timesheet_engine.policies import LeavePayPolicy, LeavePolicy
from timesheet_engine.services.conflict_validator import RejectionKind
from timesheet_engine.services.save_pipeline import (
    NeedsConfirmation,
    SavePrepared,
    SaveRejected,
    SaveRequest,
)
from timesheet_engine.services.state_machine import SaveStatus

DAY = date(2024, 4, 10)


def _hourly(employee_id=None, **kwargs):
    emp = employee(EmploymentType.HOURLY, employee_id=employee_id, **kwargs)
    return emp, rate(emp.employee_id, date(2023, 1, 1), "50")


class TestWorkSaves:
    def test_hours_are_priced(self):
        emp, r = _hourly()
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, work=(hours(emp.employee_id, DAY, "8"),))
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.status == SaveStatus.VALIDATED
        assert outcome.total_payment == Decimal("400.00")
        assert outcome.idempotency_keys == (f"{emp.employee_id}:2024-04-10:hours",)
        assert outcome.ledger_entries == ()

    def test_fingerprint_is_stable_across_retries(self):
        emp, r = _hourly()
        engine = TimesheetEngine(snapshot([emp], [r]))
        request = SaveRequest(emp.employee_id, DAY, work=(hours(emp.employee_id, DAY, "8"),))

        first = engine.validate_and_prepare_save(request)
        second = engine.validate_and_prepare_save(request)

        assert first.fingerprints == second.fingerprints

    def test_unknown_employee(self):
        engine = TimesheetEngine(snapshot())

        outcome = engine.validate_and_prepare_save(SaveRequest(uuid4(), DAY))

        assert isinstance(outcome, SaveRejected)
        assert outcome.rejections[0].kind == RejectionKind.UNKNOWN_EMPLOYEE

    def test_conflict_is_rejected(self):
        emp, r = _hourly(employee_id=E1)
        existing = leave(E1, date(2024, 2, 10))
        engine = TimesheetEngine(snapshot([emp], [r], [existing]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(E1, date(2024, 2, 10), work=(hours(E1, date(2024, 2, 10), "8"),))
        )

        assert isinstance(outcome, SaveRejected)
        assert outcome.offenders == [(E1, date(2024, 2, 10))]


class TestLeaveSaves:
    def test_fallback_needs_confirmation_then_override_commits(self):
        emp, r = _hourly()
        engine = TimesheetEngine(snapshot([emp], [r]))
        request = SaveRequest(emp.employee_id, DAY, leave=FullDay(LeaveSubtype.SYSTEM_FUNDED))

        first = engine.validate_and_prepare_save(request)

        assert isinstance(first, NeedsConfirmation)
        assert first.items[0].fallback_value == Decimal("50.00")
        assert first.items[0].employee_id == emp.employee_id

        second = engine.validate_and_prepare_save(
            SaveRequest(
                emp.employee_id,
                DAY,
                leave=FullDay(LeaveSubtype.SYSTEM_FUNDED),
                leave_value_override=Decimal("400"),
            )
        )

        assert isinstance(second, SavePrepared)
        assert second.total_payment == Decimal("400.00")
        assert second.override_applied is True
        assert second.idempotency_keys == (f"{emp.employee_id}:2024-04-10:leave",)

    def test_fallback_without_confirmation(self):
        emp, r = _hourly()
        engine = TimesheetEngine(
            snapshot([emp], [r]),
            leave_pay_policy=LeavePayPolicy(confirm_fallback=False),
        )

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, leave=FullDay(LeaveSubtype.SYSTEM_FUNDED))
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.used_fallback_rate is True
        assert outcome.total_payment == Decimal("50.00")

    def test_global_leave_uses_daily_rate(self):
        emp = employee(EmploymentType.GLOBAL)
        engine = TimesheetEngine(snapshot([emp], [rate(emp.employee_id, date(2024, 1, 1), "11000")]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, leave=FullDay(LeaveSubtype.SYSTEM_FUNDED))
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.total_payment == Decimal("500.00")

    def test_employee_funded_leave_pairs_ledger_entry(self):
        emp, r = _hourly(annual_leave_days=Decimal("12"))
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(
                emp.employee_id,
                DAY,
                leave=FullDay(LeaveSubtype.EMPLOYEE_FUNDED),
                leave_value_override=Decimal("380"),
            )
        )

        assert isinstance(outcome, SavePrepared)
        (ledger,) = outcome.ledger_entries
        assert ledger.delta == Decimal("-1")
        assert ledger.time_entry_id == outcome.entries[0].entry_id

    def test_balance_exceeded(self):
        emp, r = _hourly(annual_leave_days=Decimal("0"))
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(
                emp.employee_id,
                DAY,
                leave=FullDay(LeaveSubtype.EMPLOYEE_FUNDED),
                leave_value_override=Decimal("380"),
            )
        )

        assert isinstance(outcome, SaveRejected)
        assert outcome.rejections[0].kind == RejectionKind.LEAVE_BALANCE_EXCEEDED

    def test_negative_balance_down_to_floor(self):
        emp, r = _hourly(annual_leave_days=Decimal("0"))
        policy = LeavePolicy(allow_negative_balance=True, negative_floor_days=Decimal("2"))
        engine = TimesheetEngine(snapshot([emp], [r]), leave_policy=policy)

        outcome = engine.validate_and_prepare_save(
            SaveRequest(
                emp.employee_id,
                DAY,
                leave=FullDay(LeaveSubtype.EMPLOYEE_FUNDED),
                leave_value_override=Decimal("380"),
            )
        )

        assert isinstance(outcome, SavePrepared)

    def test_half_day_not_allowed(self):
        emp, r = _hourly(annual_leave_days=Decimal("12"))
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, leave=HalfDay(LeaveSubtype.EMPLOYEE_FUNDED))
        )

        assert isinstance(outcome, SaveRejected)
        assert outcome.rejections[0].kind == RejectionKind.HALF_DAY_NOT_ALLOWED

    def test_half_day_with_work(self):
        emp, r = _hourly(annual_leave_days=Decimal("12"))
        engine = TimesheetEngine(snapshot([emp], [r]), leave_policy=LeavePolicy(allow_half_day=True))
        segment = HalfDay(
            LeaveSubtype.EMPLOYEE_FUNDED,
            WorkHalf((hours(emp.employee_id, DAY, "4"),)),
        )

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, leave=segment, leave_value_override=Decimal("400"))
        )

        assert isinstance(outcome, SavePrepared)
        # 4 x 50 work plus half of a 400 leave day
        assert outcome.total_payment == Decimal("400.00")
        assert len(outcome.fingerprints) == 2
        assert outcome.ledger_entries[0].delta == Decimal("-0.5")

    def test_instructor_leave_without_override(self):
        emp = employee(EmploymentType.INSTRUCTOR)
        engine = TimesheetEngine(snapshot([emp]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, leave=FullDay(LeaveSubtype.SYSTEM_FUNDED))
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.total_payment == Decimal("0.00")
        assert "leave_valuation_not_applicable" in outcome.warnings


class TestReplace:
    def test_replacing_leave_reverses_its_ledger_entry(self):
        emp, r = _hourly(annual_leave_days=Decimal("12"))
        old = leave(emp.employee_id, DAY)
        usage = ledger_entry(emp.employee_id, DAY, "-1", time_entry_id=old.entry_id, key="usage")
        engine = TimesheetEngine(snapshot([emp], [r], [old], [usage]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(
                emp.employee_id,
                DAY,
                work=(hours(emp.employee_id, DAY, "8"),),
                replace_entry_ids=(old.entry_id,),
            )
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.replaced_entry_ids == (old.entry_id,)
        (reversal,) = outcome.ledger_entries
        assert reversal.kind == LedgerEntryKind.REVERSAL
        assert reversal.delta == Decimal("1")
        assert outcome.total_payment == Decimal("400.00")

    def test_without_replace_the_same_request_conflicts(self):
        emp, r = _hourly(annual_leave_days=Decimal("12"))
        old = leave(emp.employee_id, DAY)
        engine = TimesheetEngine(snapshot([emp], [r], [old]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(emp.employee_id, DAY, work=(hours(emp.employee_id, DAY, "8"),))
        )

        assert isinstance(outcome, SaveRejected)

    def test_resending_a_stored_leave_day_validates(self):
        """The stored copy neither overbooks the day nor spends the balance twice."""
        emp, r = _hourly(annual_leave_days=Decimal("1"))
        old = leave(emp.employee_id, DAY, leave_value_override=Decimal("380"))
        usage = ledger_entry(emp.employee_id, DAY, "-1", time_entry_id=old.entry_id)
        engine = TimesheetEngine(snapshot([emp], [r], [old], [usage]))

        outcome = engine.validate_and_prepare_save(
            SaveRequest(
                emp.employee_id,
                DAY,
                leave=FullDay(LeaveSubtype.EMPLOYEE_FUNDED),
                leave_value_override=Decimal("380"),
            )
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.idempotency_keys == (f"{emp.employee_id}:2024-04-10:leave",)


class TestBatch:
    def test_batch_lists_every_offender(self):
        e1, r1 = _hourly(employee_id=E1)
        e2, r2 = _hourly(employee_id=E2)
        ok, r3 = _hourly()
        existing = [leave(E1, DAY), leave(E2, DAY)]
        engine = TimesheetEngine(snapshot([e1, e2, ok], [r1, r2, r3], existing))

        outcome = engine.prepare_batch(
            [
                SaveRequest(E1, DAY, work=(hours(E1, DAY, "8"),)),
                SaveRequest(ok.employee_id, DAY, work=(hours(ok.employee_id, DAY, "8"),)),
                SaveRequest(E2, DAY, work=(hours(E2, DAY, "8"),)),
            ]
        )

        assert isinstance(outcome, SaveRejected)
        assert outcome.offenders == [(E1, DAY), (E2, DAY)]

    def test_batch_balance_sees_earlier_requests(self):
        emp, r = _hourly(annual_leave_days=Decimal("1"))
        engine = TimesheetEngine(snapshot([emp], [r]))

        def request(day):
            return SaveRequest(
                emp.employee_id,
                day,
                leave=FullDay(LeaveSubtype.EMPLOYEE_FUNDED),
                leave_value_override=Decimal("380"),
            )

        outcome = engine.prepare_batch([request(DAY), request(date(2024, 4, 11))])

        assert isinstance(outcome, SaveRejected)
        assert outcome.offenders == [(emp.employee_id, date(2024, 4, 11))]

    def test_batch_merges_payloads(self):
        emp, r = _hourly()
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.prepare_batch(
            [
                SaveRequest(emp.employee_id, DAY, work=(hours(emp.employee_id, DAY, "8"),)),
                SaveRequest(
                    emp.employee_id,
                    date(2024, 4, 11),
                    work=(hours(emp.employee_id, date(2024, 4, 11), "6"),),
                ),
            ]
        )

        assert isinstance(outcome, SavePrepared)
        assert outcome.total_payment == Decimal("700.00")
        assert len(outcome.idempotency_keys) == 2

    def test_batch_leave_and_work_on_one_day_conflict(self):
        emp, r = _hourly(employee_id=E1)
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.prepare_batch(
            [
                SaveRequest(
                    E1,
                    DAY,
                    leave=FullDay(LeaveSubtype.SYSTEM_FUNDED),
                    leave_value_override=Decimal("400"),
                ),
                SaveRequest(E1, DAY, work=(hours(E1, DAY, "8"),)),
            ]
        )

        assert isinstance(outcome, SaveRejected)
        assert [r.kind for r in outcome.rejections] == [RejectionKind.LEAVE_WORK_CONFLICT]
        assert outcome.offenders == [(E1, DAY)]

    def test_batch_two_full_leave_days_on_one_date(self):
        emp, r = _hourly(employee_id=E1)
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.prepare_batch(
            [
                SaveRequest(
                    E1,
                    DAY,
                    leave=FullDay(subtype),
                    leave_value_override=Decimal("400"),
                )
                for subtype in (LeaveSubtype.SYSTEM_FUNDED, LeaveSubtype.EMPLOYEE_FUNDED)
            ]
        )

        assert isinstance(outcome, SaveRejected)
        assert RejectionKind.LEAVE_DAY_OVERBOOKED in [r.kind for r in outcome.rejections]

    def test_batch_rejects_repeated_key(self):
        emp, r = _hourly(employee_id=E1)
        engine = TimesheetEngine(snapshot([emp], [r]))

        outcome = engine.prepare_batch(
            [
                SaveRequest(E1, DAY, work=(hours(E1, DAY, "8"),)),
                SaveRequest(E1, DAY, work=(hours(E1, DAY, "2"),)),
            ]
        )

        assert isinstance(outcome, SaveRejected)
        assert [r.kind for r in outcome.rejections] == [RejectionKind.DUPLICATE_BATCH_KEY]
