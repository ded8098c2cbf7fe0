"""Tests for save validation rules."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from builders import E1, adjustment, employee, hours, leave, service, session
from timesheet_engine.calculators.types import (
    HALF_DAY,
    EmploymentType,
    EntryStatus,
    FullDay,
    HalfDay,
    LeaveHalf,
    LeaveSubtype,
)
from timesheet_engine.policies import LeavePolicy
from timesheet_engine.services.conflict_validator import ConflictValidator, RejectionKind

DAY = date(2024, 2, 10)


def _kinds(rejections):
    return [r.kind for r in rejections]


class TestLeaveWorkConflicts:
    def test_work_on_leave_day_names_employee_and_date(self):
        emp = employee(employee_id=E1)
        existing = [leave(E1, DAY, LeaveSubtype.EMPLOYEE_FUNDED)]

        rejections = ConflictValidator({}).validate(emp, DAY, [hours(E1, DAY, "8")], None, existing)

        assert _kinds(rejections) == [RejectionKind.LEAVE_WORK_CONFLICT]
        assert rejections[0].employee_id == E1
        assert rejections[0].entry_date == DAY

    def test_leave_on_work_day(self):
        emp = employee(employee_id=E1)
        existing = [hours(E1, DAY, "8")]

        rejections = ConflictValidator({}).validate(
            emp, DAY, [], FullDay(LeaveSubtype.SYSTEM_FUNDED), existing
        )

        assert _kinds(rejections) == [RejectionKind.LEAVE_WORK_CONFLICT]

    def test_work_and_full_leave_in_same_request(self):
        emp = employee()

        rejections = ConflictValidator({}).validate(
            emp, DAY, [hours(emp.employee_id, DAY, "8")], FullDay(LeaveSubtype.EMPLOYEE_FUNDED), []
        )

        assert RejectionKind.LEAVE_WORK_CONFLICT in _kinds(rejections)

    def test_work_beside_existing_half_day(self):
        emp = employee()
        existing = [leave(emp.employee_id, DAY, fraction=HALF_DAY)]

        rejections = ConflictValidator({}, LeavePolicy(allow_half_day=True)).validate(
            emp, DAY, [hours(emp.employee_id, DAY, "4")], None, existing
        )

        assert rejections == []

    def test_half_day_beside_existing_work(self):
        emp = employee()
        existing = [hours(emp.employee_id, DAY, "4")]

        rejections = ConflictValidator({}, LeavePolicy(allow_half_day=True)).validate(
            emp, DAY, [], HalfDay(LeaveSubtype.EMPLOYEE_FUNDED), existing
        )

        assert rejections == []

    def test_unpaid_leave_does_not_block_work(self):
        emp = employee()
        existing = [leave(emp.employee_id, DAY, LeaveSubtype.UNPAID)]

        rejections = ConflictValidator({}).validate(emp, DAY, [hours(emp.employee_id, DAY, "8")], None, existing)

        assert rejections == []

    def test_trashed_leave_is_invisible(self):
        emp = employee()
        existing = [leave(emp.employee_id, DAY, status=EntryStatus.TRASHED)]

        rejections = ConflictValidator({}).validate(emp, DAY, [hours(emp.employee_id, DAY, "8")], None, existing)

        assert rejections == []

    def test_overbooked_leave(self):
        emp = employee()
        existing = [leave(emp.employee_id, DAY)]

        rejections = ConflictValidator({}).validate(
            emp, DAY, [], FullDay(LeaveSubtype.SYSTEM_FUNDED), existing
        )

        assert _kinds(rejections) == [RejectionKind.LEAVE_DAY_OVERBOOKED]

    def test_two_leave_halves_fill_the_day(self):
        emp = employee()
        segment = HalfDay(LeaveSubtype.EMPLOYEE_FUNDED, LeaveHalf(LeaveSubtype.SYSTEM_FUNDED))

        rejections = ConflictValidator({}, LeavePolicy(allow_half_day=True)).validate(emp, DAY, [], segment, [])

        assert rejections == []


class TestInputRules:
    def test_before_start_date(self):
        emp = employee(start_date=date(2024, 3, 1))

        rejections = ConflictValidator({}).validate(emp, DAY, [hours(emp.employee_id, DAY, "8")], None, [])

        assert _kinds(rejections) == [RejectionKind.INVALID_START_DATE]

    def test_half_day_disabled(self):
        emp = employee()

        rejections = ConflictValidator({}).validate(emp, DAY, [], HalfDay(LeaveSubtype.EMPLOYEE_FUNDED), [])

        assert _kinds(rejections) == [RejectionKind.HALF_DAY_NOT_ALLOWED]

    def test_negative_hours(self):
        emp = employee()

        rejections = ConflictValidator({}).validate(emp, DAY, [hours(emp.employee_id, DAY, "-1")], None, [])

        assert _kinds(rejections) == [RejectionKind.MALFORMED_INPUT]

    def test_adjustment_requires_notes_and_amount(self):
        emp = employee()
        entries = [adjustment(emp.employee_id, DAY, "0", notes=None)]

        rejections = ConflictValidator({}).validate(emp, DAY, entries, None, [])

        assert _kinds(rejections) == [RejectionKind.MALFORMED_INPUT, RejectionKind.MALFORMED_INPUT]

    def test_sessions_only_for_instructors(self):
        emp = employee(EmploymentType.HOURLY)
        svc = service()

        rejections = ConflictValidator({svc.service_context_id: svc}).validate(
            emp, DAY, [session(emp.employee_id, DAY, svc.service_context_id, 2)], None, []
        )

        assert _kinds(rejections) == [RejectionKind.MALFORMED_INPUT]

    def test_unknown_service(self):
        emp = employee(EmploymentType.INSTRUCTOR)

        rejections = ConflictValidator({}).validate(
            emp, DAY, [session(emp.employee_id, DAY, uuid4(), 2)], None, []
        )

        assert _kinds(rejections) == [RejectionKind.UNKNOWN_SERVICE]

    def test_non_positive_override(self):
        emp = employee()

        rejections = ConflictValidator({}).validate(
            emp, DAY, [], FullDay(LeaveSubtype.SYSTEM_FUNDED), [], Decimal("0")
        )

        assert _kinds(rejections) == [RejectionKind.MALFORMED_INPUT]

    def test_every_rule_is_reported(self):
        emp = employee(start_date=date(2024, 3, 1))

        rejections = ConflictValidator({}).validate(
            emp, DAY, [hours(emp.employee_id, DAY, "-2")], HalfDay(LeaveSubtype.EMPLOYEE_FUNDED), []
        )

        assert set(_kinds(rejections)) == {
            RejectionKind.INVALID_START_DATE,
            RejectionKind.MALFORMED_INPUT,
            RejectionKind.HALF_DAY_NOT_ALLOWED,
        }
