# tests/test_reversal.py
"""
Tests for the Reversal Engine.

Tests cover:
- Mirror symmetry: same accounts and order, debit/credit swapped
- Idempotence: a second reversal is refused
- Original entry untouched
- Debtor synchronised when the original belongs to a student
"""

import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal

import pytest

from ledger.commands import reverse_journal_entry, void_journal_entry
from ledger.models import Debtor, JournalEntry


@pytest.mark.django_db
class TestReverseJournalEntry:

    def test_reversal_mirrors_every_line(self, chart, make_entry):
        original = make_entry([
            ("1000", "100.00", "0"),
            ("4001", "0", "70.00"),
            ("4002", "0", "30.00"),
        ])

        result = reverse_journal_entry(chart, original.entry_id, reason="Wrong tenant")

        assert result.success, result.error
        reversal = result.data["reversal"]
        original_lines = original.ordered_lines()
        reversal_lines = reversal.ordered_lines()
        assert len(reversal_lines) == len(original_lines)
        for before, after in zip(original_lines, reversal_lines):
            assert after.account_code == before.account_code
            assert after.debit == before.credit
            assert after.credit == before.debit
            assert after.metadata["originalEntryId"] == original.entry_id
            assert after.metadata["isReversal"] is True
        assert reversal.kind == JournalEntry.Kind.REVERSAL
        assert reversal.source_kind == "journal_entry"
        assert reversal.source_id == original.entry_id

    def test_original_and_reversal_net_to_zero(self, chart, make_entry):
        original = make_entry([("1000", "45.00", "0"), ("4005", "0", "45.00")])
        reversal = reverse_journal_entry(chart, original.entry_id).data["reversal"]

        net = defaultdict(Decimal)
        for line in original.ordered_lines() + reversal.ordered_lines():
            net[line.account_code] += line.debit - line.credit
        assert all(value == 0 for value in net.values())

    def test_reversal_defaults_to_original_date(self, chart, make_entry):
        original = make_entry([("1000", "10.00", "0"), ("4005", "0", "10.00")], entry_date=date(2024, 11, 30))

        reversal = reverse_journal_entry(chart, original.entry_id).data["reversal"]

        assert reversal.date == date(2024, 11, 30)

    def test_effective_date_override(self, chart, simple_entry):
        reversal = reverse_journal_entry(chart, simple_entry.entry_id, effective_date=date(2025, 3, 1)).data["reversal"]

        assert reversal.date == date(2025, 3, 1)

    @pytest.mark.parametrize("effective_date", ["31/01/2025", "2025-02-30", "soon"])
    def test_unparsable_effective_date_rejected(self, chart, simple_entry, effective_date):
        result = reverse_journal_entry(chart, simple_entry.entry_id, effective_date=effective_date)

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert not JournalEntry.objects.filter(kind=JournalEntry.Kind.REVERSAL).exists()

    def test_original_is_not_modified(self, chart, simple_entry):
        reverse_journal_entry(chart, simple_entry.entry_id)

        simple_entry.refresh_from_db()
        assert simple_entry.status == JournalEntry.Status.POSTED
        assert simple_entry.total_debit == Decimal("100.00")
        assert all("isReversal" not in line.metadata for line in simple_entry.ordered_lines())

    def test_second_reversal_refused(self, chart, simple_entry):
        first = reverse_journal_entry(chart, simple_entry.entry_id)
        second = reverse_journal_entry(chart, simple_entry.entry_id)

        assert first.success
        assert not second.success
        assert second.error_code == "ALREADY_REVERSED"
        assert JournalEntry.objects.filter(kind=JournalEntry.Kind.REVERSAL).count() == 1

    def test_voided_entry_cannot_be_reversed(self, chart, simple_entry):
        void_journal_entry(chart, simple_entry.entry_id)

        result = reverse_journal_entry(chart, simple_entry.entry_id)

        assert result.error_code == "NOT_POSTED"

    def test_unknown_entry(self, chart):
        result = reverse_journal_entry(chart, uuid.uuid4())

        assert not result.success
        assert result.error_code == "NOT_FOUND"

    def test_reversing_student_accrual_updates_debtor(self, chart, lease_start, student_id):
        assert Debtor.objects.get(student_id=student_id).total_owed == Decimal("900.00")

        result = reverse_journal_entry(chart, lease_start.entry_id, reason="Lease cancelled")

        assert result.success
        debtor = Debtor.objects.get(student_id=student_id)
        assert debtor.total_owed == Decimal("0.00")
        assert debtor.current_balance == Decimal("0.00")
        assert "Lease cancelled" in debtor.notes
