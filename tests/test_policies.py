"""Tests for policy parsing."""

from datetime import date
from decimal import Decimal

import pytest

from timesheet_engine.calculators.types import LeaveSubtype
from timesheet_engine.policies import (
    HolidayRule,
    LeavePayMethod,
    LeavePayPolicy,
    LeavePolicy,
    parse_leave_pay_method,
)


class TestLeavePolicy:
    def test_empty_document_is_default(self):
        assert LeavePolicy.from_mapping(None) == LeavePolicy()
        assert LeavePolicy.from_mapping("") == LeavePolicy()

    def test_from_json_string(self):
        policy = LeavePolicy.from_mapping(
            '{"allow_half_day": "true", "allow_negative_balance": true, "negative_floor_days": 5,'
            ' "carryover_enabled": 1, "carryover_max_days": "4.5"}'
        )

        assert policy.allow_half_day is True
        assert policy.allow_negative_balance is True
        assert policy.negative_floor == Decimal("-5")
        assert policy.carryover_enabled is True
        assert policy.carryover_max_days == Decimal("4.5")

    @pytest.mark.parametrize("raw", ["5", "-5"])
    def test_floor_sign_is_normalized(self, raw):
        assert LeavePolicy(negative_floor_days=Decimal(raw)).negative_floor == Decimal("-5")

    def test_negative_carryover_clamped(self):
        assert LeavePolicy.from_mapping({"carryover_max_days": -3}).carryover_max_days == Decimal("0")

    def test_json_must_be_object(self):
        with pytest.raises(ValueError):
            LeavePolicy.from_mapping("[1, 2]")


class TestHolidayRules:
    def test_yearly_rule_matches_any_year(self):
        policy = LeavePolicy.from_mapping(
            {
                "holiday_rules": [
                    {
                        "name": "Spring holiday",
                        "type": "system_paid",
                        "start_date": "2020-04-22",
                        "end_date": "2020-04-23",
                        "recurrence": "yearly",
                    }
                ]
            }
        )

        rule = policy.find_holiday(date(2024, 4, 23))

        assert rule.name == "Spring holiday"
        assert rule.leave_subtype == LeaveSubtype.SYSTEM_FUNDED
        assert policy.find_holiday(date(2024, 4, 24)) is None

    def test_one_off_rule(self):
        rule = HolidayRule.from_mapping({"name": "Closure", "date": "2024-05-01", "type": "half_day"})

        assert rule.matches(date(2024, 5, 1)) is True
        assert rule.matches(date(2025, 5, 1)) is False
        assert rule.half_day is True
        assert rule.leave_subtype == LeaveSubtype.EMPLOYEE_FUNDED

    def test_mixed_type_has_no_subtype(self):
        rule = HolidayRule.from_mapping({"date": "2024-05-01", "type": "mixed"})

        assert rule.leave_subtype is None

    def test_invalid_recurrence(self):
        with pytest.raises(ValueError):
            HolidayRule.from_mapping({"date": "2024-05-01", "recurrence": "monthly"})

    def test_end_before_start(self):
        with pytest.raises(ValueError):
            HolidayRule.from_mapping({"start_date": "2024-05-02", "end_date": "2024-05-01"})

    def test_missing_date(self):
        with pytest.raises(ValueError):
            HolidayRule.from_mapping({"name": "Nothing"})


class TestLeavePayPolicy:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2.5", 3),
            ("0.4", 1),
            (0, 3),
            (-2, 3),
            ("abc", 3),
            (None, 3),
            (12, 12),
        ],
    )
    def test_lookback_months(self, raw, expected):
        assert LeavePayPolicy.from_mapping({"lookback_months": raw}).lookback_months == expected

    def test_direct_construction_requires_positive_lookback(self):
        with pytest.raises(ValueError):
            LeavePayPolicy(lookback_months=0)

    def test_negative_fixed_rate_dropped(self):
        assert LeavePayPolicy.from_mapping({"fixed_rate_default": -1}).fixed_rate_default is None
        assert LeavePayPolicy.from_mapping({"fixed_rate_default": "320"}).fixed_rate_default == Decimal("320")

    def test_confirm_fallback_defaults_on(self):
        assert LeavePayPolicy.from_mapping({}).confirm_fallback is True
        assert LeavePayPolicy.from_mapping({"confirm_fallback": False}).confirm_fallback is False

    def test_default_method_token(self):
        policy = LeavePayPolicy.from_mapping({"default_method": "fixed_rate"})

        assert policy.default_method == LeavePayMethod.FIXED

    @pytest.mark.parametrize(
        "token,expected",
        [
            ("legal", LeavePayMethod.LEGAL),
            (" Average ", LeavePayMethod.AVERAGE),
            ("avg_hourly_x_avg_day_hours", LeavePayMethod.AVERAGE),
            ("fixed", LeavePayMethod.FIXED),
            ("bogus", None),
            (None, None),
        ],
    )
    def test_method_tokens(self, token, expected):
        assert parse_leave_pay_method(token) == expected

    def test_employee_method_wins(self):
        policy = LeavePayPolicy(default_method=LeavePayMethod.LEGAL)

        assert policy.method_for("fixed") == LeavePayMethod.FIXED
        assert policy.method_for("unknown") == LeavePayMethod.LEGAL
        assert policy.method_for(None) == LeavePayMethod.LEGAL
