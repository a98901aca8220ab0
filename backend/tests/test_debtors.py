# tests/test_debtors.py
"""Tests for the debtor balance synchronizer."""

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from ledger.debtors import recompute, sync_debtor
from ledger.models import Account, Debtor


@pytest.fixture
def debtor(db):
    return Debtor.objects.create(
        student_id="STU500",
        account_code="1100-STU500",
        total_owed=Decimal("500.00"),
        total_paid=Decimal("200.00"),
        current_balance=Decimal("300.00"),
        overdue_amount=Decimal("300.00"),
    )


@pytest.mark.django_db
class TestRecompute:

    def test_returns_updated_copy(self, debtor):
        updated = recompute(debtor, Decimal("100.00"), Decimal("50.00"))

        assert updated is not debtor
        assert updated.total_owed == Decimal("600.00")
        assert updated.total_paid == Decimal("250.00")
        assert updated.current_balance == Decimal("350.00")
        assert updated.overdue_amount == Decimal("350.00")

    def test_is_pure(self, debtor):
        recompute(debtor, Decimal("100.00"))

        assert debtor.total_owed == Decimal("500.00")
        debtor.refresh_from_db()
        assert debtor.total_owed == Decimal("500.00")
        assert debtor.current_balance == Decimal("300.00")

    def test_balance_never_negative(self, debtor):
        updated = recompute(debtor, total_paid_delta=Decimal("900.00"))

        assert updated.current_balance == Decimal("0.00")
        assert updated.overdue_amount == Decimal("0.00")

    def test_totals_keep_sign_so_deltas_undo_exactly(self, debtor):
        updated = recompute(debtor, total_owed_delta=Decimal("-800.00"))

        assert updated.total_owed == Decimal("-300.00")
        assert updated.current_balance == Decimal("0.00")
        restored = recompute(updated, total_owed_delta=Decimal("800.00"))
        assert restored.total_owed == Decimal("500.00")
        assert restored.current_balance == Decimal("300.00")


@pytest.mark.django_db
class TestDebtorModel:

    def test_skewed_balance_refused(self, debtor):
        debtor.current_balance = Decimal("1.00")

        with pytest.raises(ValidationError):
            debtor.save()


@pytest.mark.django_db
class TestSyncDebtor:

    def test_creates_debtor_and_receivable(self, ctx):
        debtor = sync_debtor(ctx, "STU777", total_owed_delta=Decimal("120.00"))

        assert debtor.account_code == "1100-STU777"
        assert Account.objects.filter(code="1100-STU777", account_type="Asset").exists()
        stored = Debtor.objects.get(student_id="STU777")
        assert stored.current_balance == Decimal("120.00")

    def test_appends_notes(self, ctx, debtor):
        sync_debtor(ctx, debtor.student_id, total_paid_delta=Decimal("10.00"), note="Cash at desk")
        sync_debtor(ctx, debtor.student_id, total_paid_delta=Decimal("10.00"), note="Cash again")

        debtor.refresh_from_db()
        assert debtor.total_paid == Decimal("220.00")
        assert "Cash at desk" in debtor.notes
        assert debtor.notes.index("Cash at desk") < debtor.notes.index("Cash again")

    def test_sets_extra_fields(self, ctx, debtor):
        sync_debtor(ctx, debtor.student_id, status=Debtor.Status.OVERDUE)

        debtor.refresh_from_db()
        assert debtor.status == Debtor.Status.OVERDUE
