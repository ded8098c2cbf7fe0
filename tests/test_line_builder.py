"""Tests for entry line builder."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from builders import E1, hours, leave, ledger_entry
from timesheet_engine.calculators.line_builder import EntryLineBuilder

DAY = date(2024, 4, 10)


class TestEntryLineBuilder:
    """Test line builder functionality."""

    def test_round_to_cents(self):
        """Test rounding to 2 decimal places."""
        assert EntryLineBuilder.round_to_cents(Decimal("10.124")) == Decimal("10.12")

        # Half-up rounding
        assert EntryLineBuilder.round_to_cents(Decimal("10.125")) == Decimal("10.13")
        assert EntryLineBuilder.round_to_cents(Decimal("-10.125")) == Decimal("-10.13")

    def test_round_days(self):
        assert EntryLineBuilder.round_days(Decimal("6.0327")) == Decimal("6.033")

    def test_idempotency_key(self):
        key = EntryLineBuilder.idempotency_key(
            UUID("00000000-0000-0000-0000-0000000000e1"), DAY, "hours"
        )

        assert key == "00000000-0000-0000-0000-0000000000e1:2024-04-10:hours"

    def test_ledger_key(self):
        entry_id = UUID("00000000-0000-0000-0000-000000000001")

        assert EntryLineBuilder.ledger_key(entry_id, "reversal") == (
            "ledger:00000000-0000-0000-0000-000000000001:reversal"
        )

    def test_fingerprint_is_deterministic(self):
        """Same payload, same fingerprint."""
        a = hours(E1, DAY, "8", total_payment=Decimal("400.00"))

        assert EntryLineBuilder.compute_group_fingerprint([a]) == EntryLineBuilder.compute_group_fingerprint([a])

    def test_fingerprint_ignores_order_and_ids(self):
        a = hours(E1, DAY, "3")
        b = hours(E1, DAY, "5")
        # Same content under fresh ids
        a2 = hours(E1, DAY, "3")
        b2 = hours(E1, DAY, "5")

        assert EntryLineBuilder.compute_group_fingerprint([a, b]) == EntryLineBuilder.compute_group_fingerprint(
            [b2, a2]
        )

    def test_fingerprint_changes_with_content(self):
        base = EntryLineBuilder.compute_group_fingerprint([hours(E1, DAY, "8")])

        assert EntryLineBuilder.compute_group_fingerprint([hours(E1, DAY, "7")]) != base
        assert EntryLineBuilder.compute_group_fingerprint([leave(E1, DAY)]) != base

    def test_fingerprint_length(self):
        assert len(EntryLineBuilder.compute_group_fingerprint([hours(E1, DAY, "8")])) == 32

    def test_sum_ledger_deltas(self):
        entries = [
            ledger_entry(E1, DAY, "-1"),
            ledger_entry(E1, DAY, "-0.5"),
            ledger_entry(E1, DAY, "1"),
        ]

        assert EntryLineBuilder.sum_ledger_deltas(entries) == Decimal("-0.5")
