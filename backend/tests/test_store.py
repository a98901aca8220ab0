# tests/test_store.py
"""
Tests for the Journal Entry Store.

Tests cover:
- Balance, minimum line count and account resolution on every write
- Nothing persisted when validation fails
- Line replacement/removal re-validation
- Voiding and exact id lookup
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied

from ledger.commands import (
    get_journal_entry,
    post_journal_entry,
    remove_journal_lines,
    replace_journal_lines,
    void_journal_entry,
)
from ledger.exceptions import EntryNotFound, InvalidLine
from ledger.models import JournalEntry, JournalLine, LedgerTransaction
from ledger.types import EntryDraft, LineDraft


def _draft(*lines, **fields):
    return EntryDraft(
        date=date(2025, 2, 1),
        description="Test entry",
        lines=[LineDraft(account_code=code, debit=debit, credit=credit) for code, debit, credit in lines],
        **fields,
    )


@pytest.mark.django_db
class TestPostJournalEntry:

    def test_balanced_entry_is_posted(self, chart):
        result = post_journal_entry(chart, _draft(("1000", "250.00", "0"), ("4001", "0", "250.00")))

        assert result.success
        entry = result.data
        assert uuid.UUID(entry.entry_id)
        assert entry.status == JournalEntry.Status.POSTED
        assert entry.total_debit == Decimal("250.00")
        assert entry.total_credit == Decimal("250.00")

    def test_lines_keep_insertion_order_and_account_snapshot(self, chart):
        result = post_journal_entry(chart, _draft(
            ("4001", "0", "100.00"),
            ("1000", "60.00", "0"),
            ("1001", "40.00", "0"),
        ))

        lines = result.data.ordered_lines()
        assert [line.account_code for line in lines] == ["4001", "1000", "1001"]
        assert [line.line_no for line in lines] == [1, 2, 3]
        assert lines[0].account_name == "Rental Income"
        assert lines[0].account_type == "Income"

    def test_unbalanced_entry_rejected_and_nothing_written(self, chart):
        result = post_journal_entry(chart, _draft(("1000", "100.00", "0"), ("4001", "0", "99.00")))

        assert not result.success
        assert result.error_code == "UNBALANCED"
        assert JournalEntry.objects.count() == 0
        assert JournalLine.objects.count() == 0

    def test_single_line_rejected(self, chart):
        result = post_journal_entry(chart, _draft(("1000", "100.00", "0")))

        assert not result.success
        assert result.error_code == "TOO_FEW_LINES"
        assert JournalEntry.objects.count() == 0

    def test_unknown_account_rejected(self, chart):
        result = post_journal_entry(chart, _draft(("1000", "100.00", "0"), ("9999", "0", "100.00")))

        assert not result.success
        assert result.error_code == "UNKNOWN_ACCOUNT"
        assert "9999" in result.error
        assert JournalEntry.objects.count() == 0

    def test_line_with_debit_and_credit_rejected(self, chart):
        result = post_journal_entry(chart, _draft(
            ("1000", "100.00", "100.00"),
            ("4001", "0", "0"),
        ))

        assert not result.success
        assert result.error_code == "INVALID_LINE"

    def test_negative_amount_rejected(self, chart):
        result = post_journal_entry(chart, _draft(("1000", "-50.00", "0"), ("4001", "-50.00", "0")))

        assert not result.success
        assert result.error_code == "INVALID_LINE"

    def test_non_finite_amount_rejected_in_draft(self, chart):
        with pytest.raises(InvalidLine):
            LineDraft(account_code="1000", debit=Decimal("NaN"))

    def test_non_finite_amount_rejected_in_dict_draft(self, chart):
        result = post_journal_entry(chart, {
            "date": "2025-02-01",
            "lines": [
                {"account_code": "1000", "debit": "NaN"},
                {"account_code": "4005", "credit": "NaN"},
            ],
        })

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert JournalEntry.objects.count() == 0

    def test_dict_draft_is_accepted(self, chart):
        result = post_journal_entry(chart, {
            "date": "2025-02-01",
            "description": "From dict",
            "lines": [
                {"account_code": "1000", "debit": "75.50"},
                {"account_code": "4005", "credit": "75.50", "metadata": {"studentId": "STU009"}},
            ],
        })

        assert result.success, result.error
        assert result.data.ordered_lines()[1].metadata == {"studentId": "STU009"}

    def test_reference_collisions_allowed(self, chart):
        first = post_journal_entry(chart, _draft(("1000", "10.00", "0"), ("4005", "0", "10.00"), transaction_reference="TXN-1"))
        second = post_journal_entry(chart, _draft(("1000", "20.00", "0"), ("4005", "0", "20.00"), transaction_reference="TXN-1"))

        assert first.success and second.success
        assert first.data.entry_id != second.data.entry_id
        assert LedgerTransaction.objects.filter(reference="TXN-1").count() == 1

    def test_requires_permission(self, viewer_ctx, chart):
        with pytest.raises(PermissionDenied):
            post_journal_entry(viewer_ctx, _draft(("1000", "10.00", "0"), ("4005", "0", "10.00")))


@pytest.mark.django_db
class TestLineEdits:

    def test_replace_lines_recomputes_totals(self, chart, simple_entry):
        result = replace_journal_lines(chart, simple_entry.entry_id, [
            LineDraft(account_code="1001", debit="120.00"),
            LineDraft(account_code="4005", credit="120.00"),
        ])

        assert result.success, result.error
        simple_entry.refresh_from_db()
        assert simple_entry.total_debit == Decimal("120.00")
        assert [line.account_code for line in simple_entry.ordered_lines()] == ["1001", "4005"]

    def test_unbalanced_replacement_leaves_entry_unchanged(self, chart, simple_entry):
        result = replace_journal_lines(chart, simple_entry.entry_id, [
            LineDraft(account_code="1001", debit="120.00"),
            LineDraft(account_code="4005", credit="100.00"),
        ])

        assert result.error_code == "UNBALANCED"
        simple_entry.refresh_from_db()
        assert simple_entry.total_debit == Decimal("100.00")
        assert [line.account_code for line in simple_entry.ordered_lines()] == ["1000", "4005"]

    def test_infinite_replacement_leaves_entry_unchanged(self, chart, simple_entry):
        result = replace_journal_lines(chart, simple_entry.entry_id, [
            {"account_code": "1000", "debit": "Infinity"},
            {"account_code": "4005", "credit": "Infinity"},
        ])

        assert result.error_code == "INVALID_LINE"
        simple_entry.refresh_from_db()
        assert simple_entry.total_debit == Decimal("100.00")

    def test_removal_below_two_lines_refused(self, chart, simple_entry):
        result = remove_journal_lines(chart, simple_entry.entry_id, [2])

        assert not result.success
        assert result.error_code == "WOULD_UNBALANCE_REMAINDER"
        assert simple_entry.lines.count() == 2

    def test_removal_that_unbalances_refused(self, chart, make_entry):
        entry = make_entry([("1000", "100.00", "0"), ("4001", "0", "60.00"), ("4002", "0", "40.00")])

        result = remove_journal_lines(chart, entry.entry_id, [3])

        assert result.error_code == "WOULD_UNBALANCE_REMAINDER"
        assert entry.lines.count() == 3

    def test_removing_balanced_pair_succeeds(self, chart, make_entry):
        entry = make_entry([
            ("1000", "100.00", "0"),
            ("4001", "0", "100.00"),
            ("1001", "20.00", "0"),
            ("4002", "0", "20.00"),
        ])

        result = remove_journal_lines(chart, entry.entry_id, [3, 4])

        assert result.success, result.error
        entry.refresh_from_db()
        assert entry.total_debit == Decimal("100.00")
        assert [line.line_no for line in entry.ordered_lines()] == [1, 2]


@pytest.mark.django_db
class TestVoidAndLookup:

    def test_void_entry(self, chart, simple_entry):
        result = void_journal_entry(chart, simple_entry.entry_id, reason="Posted twice")

        assert result.success
        simple_entry.refresh_from_db()
        assert simple_entry.status == JournalEntry.Status.VOIDED
        assert simple_entry.void_reason == "Posted twice"
        assert simple_entry.voided_by == "user-1"

    def test_void_twice_is_conflict(self, chart, simple_entry):
        void_journal_entry(chart, simple_entry.entry_id)
        result = void_journal_entry(chart, simple_entry.entry_id)

        assert not result.success
        assert result.error_code == "NOT_POSTED"

    def test_get_by_exact_id(self, chart, simple_entry):
        assert get_journal_entry(chart, simple_entry.entry_id).pk == simple_entry.pk

    def test_get_unknown_id_raises(self, chart):
        with pytest.raises(EntryNotFound):
            get_journal_entry(chart, uuid.uuid4())

    def test_get_non_uuid_raises(self, chart, simple_entry):
        with pytest.raises(EntryNotFound):
            get_journal_entry(chart, "Manual entry")
