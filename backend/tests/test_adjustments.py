# tests/test_adjustments.py
"""Tests for negotiated discounts."""

from datetime import date
from decimal import Decimal

import pytest

from ledger.adjustments import apply_discount
from ledger.cascade import delete_with_cascade
from ledger.commands import reverse_journal_entry, void_journal_entry
from ledger.models import Account, Debtor, JournalEntry
from ledger.postings import record_monthly_accrual


@pytest.fixture
def february_accrual(chart, student_id):
    result = record_monthly_accrual(chart, student_id, 2025, 2, Decimal("150.00"))
    assert result.success, result.error
    return result.data


@pytest.mark.django_db
class TestApplyDiscount:

    def test_rent_discount_150_to_140(self, chart, student_id, february_accrual):
        result = apply_discount(chart, student_id, Decimal("150.00"), Decimal("140.00"), "rent")

        assert result.success, result.error
        lines = result.data.ordered_lines()
        assert len(lines) == 2
        assert (lines[0].account_code, lines[0].debit) == ("4001", Decimal("10.00"))
        assert (lines[1].account_code, lines[1].credit) == (f"1100-{student_id}", Decimal("10.00"))
        assert result.data.kind == JournalEntry.Kind.ADJUSTMENT

        debtor = Debtor.objects.get(student_id=student_id)
        assert debtor.total_owed == Decimal("140.00")
        assert debtor.current_balance == Decimal("140.00")
        assert debtor.original_outstanding == Decimal("140.00")

    def test_linked_accrual_sets_date_and_parent(self, chart, student_id, february_accrual):
        result = apply_discount(
            chart, student_id, "150", "140", "rent",
            linked_accrual_id=february_accrual.entry_id,
        )

        assert result.data.date == date(2025, 2, 1)
        for line in result.data.ordered_lines():
            assert line.metadata["parentEntryId"] == february_accrual.entry_id

    def test_unlinked_discount_is_dated_today(self, chart, student_id, february_accrual):
        result = apply_discount(chart, student_id, "150", "140", "rent")

        assert result.data.date == chart.today

    @pytest.mark.parametrize("negotiated", ["150.00", "175.00", "0", "-5"])
    def test_negotiated_must_be_below_original_and_positive(self, chart, student_id, february_accrual, negotiated):
        before = JournalEntry.objects.count()

        result = apply_discount(chart, student_id, "150.00", negotiated, "rent")

        assert not result.success
        assert result.error_code == "INVALID_AMOUNTS"
        assert JournalEntry.objects.count() == before
        assert Debtor.objects.get(student_id=student_id).total_owed == Decimal("150.00")

    @pytest.mark.parametrize("negotiated", ["nan", "Infinity", "-inf", "abc"])
    def test_non_numeric_amounts_rejected(self, chart, student_id, february_accrual, negotiated):
        before = JournalEntry.objects.count()

        result = apply_discount(chart, student_id, "150", negotiated, "rent")

        assert result.error_code == "INVALID_AMOUNTS"
        assert JournalEntry.objects.count() == before

    def test_unknown_payment_type(self, chart, student_id, february_accrual):
        result = apply_discount(chart, student_id, "150", "140", "parking")

        assert result.error_code == "INVALID_PAYMENT_TYPE"

    def test_missing_accrual(self, chart, student_id, february_accrual):
        result = apply_discount(
            chart, student_id, "150", "140", "rent",
            linked_accrual_id="00000000-0000-0000-0000-000000000000",
        )

        assert result.error_code == "ACCRUAL_NOT_FOUND"
        assert Debtor.objects.get(student_id=student_id).total_owed == Decimal("150.00")

    def test_deposit_discount_uses_liability_account(self, chart, student_id, lease_start):
        result = apply_discount(chart, student_id, "280", "200", "deposit")

        debit_line = result.data.ordered_lines()[0]
        assert debit_line.account_code == "2020"
        assert debit_line.account_type == Account.AccountType.LIABILITY
        assert debit_line.debit == Decimal("80.00")

    def test_account_created_when_missing(self, ctx, student_id):
        # Empty chart: the income account is created on demand.
        result = apply_discount(ctx, student_id, "100", "90", "utilities")

        assert result.success, result.error
        assert Account.objects.filter(code="4004").exists()

    def test_deleting_accrual_removes_linked_discount(self, chart, student_id, february_accrual):
        discount = apply_discount(
            chart, student_id, "150", "140", "rent",
            linked_accrual_id=february_accrual.entry_id,
        ).data

        result = delete_with_cascade(chart, february_accrual.entry_id)

        assert result.success, result.error
        assert not JournalEntry.objects.filter(pk=discount.pk).exists()
        assert Debtor.objects.get(student_id=student_id).total_owed == Decimal("0.00")

    def test_reversing_accrual_after_discount_keeps_discount_effect(self, chart, student_id, lease_start):
        discount = apply_discount(chart, student_id, "600", "500", "rent").data

        reverse_journal_entry(chart, lease_start.entry_id, reason="Lease cancelled")

        debtor = Debtor.objects.get(student_id=student_id)
        assert debtor.total_owed == Decimal("-100.00")
        assert debtor.current_balance == Decimal("0.00")

        void_journal_entry(chart, discount.entry_id, reason="Discount withdrawn")

        debtor.refresh_from_db()
        assert debtor.total_owed == Decimal("0.00")
        assert debtor.current_balance == Decimal("0.00")
