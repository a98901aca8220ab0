# tests/conftest.py
"""
Pytest fixtures for the ledger tests.

- ActorContext takes an actor id and explicit permission codes
- Every operation receives an OperationContext built from the actor
- The configured chart of accounts is seeded for each test
"""

from datetime import date
from decimal import Decimal

import pytest

from housing.models import Application
from ledger.authz import ActorContext
from ledger.commands import post_journal_entry
from ledger.context import OperationContext
from ledger.directory import seed_chart
from ledger.models import JournalEntry
from ledger.postings import record_lease_start, record_payment
from ledger.types import EntryDraft, LineDraft


STUDENT_ID = "STU001"


# =============================================================================
# Actor & Context Fixtures
# =============================================================================

@pytest.fixture
def actor():
    """Actor holding every ledger permission."""
    return ActorContext(actor_id="user-1", email="finance@test.com", perms=frozenset({"*"}))


@pytest.fixture
def viewer():
    """Actor without any ledger permission."""
    return ActorContext(actor_id="viewer-1")


@pytest.fixture
def ctx(db, actor):
    return OperationContext.begin(actor)


@pytest.fixture
def viewer_ctx(db, viewer):
    return OperationContext.begin(viewer)


@pytest.fixture
def chart(ctx):
    """Seed the configured chart of accounts."""
    seed_chart(ctx)
    return ctx


# =============================================================================
# Entry helpers
# =============================================================================

@pytest.fixture
def make_entry(chart):
    """
    Post a manual entry and return it.

    Usage:
        entry = make_entry([("1000", "100", "0"), ("4005", "0", "100")])
        entry = make_entry(lines, transaction_reference="REF-1")

    A line tuple may carry a fourth element: the line metadata dict.
    """
    def _make(lines, entry_date=date(2025, 1, 15), description="Manual entry", **fields):
        drafts = []
        for line in lines:
            code, debit, credit = line[:3]
            metadata = line[3] if len(line) > 3 else {}
            drafts.append(LineDraft(account_code=code, debit=debit, credit=credit, metadata=metadata))
        result = post_journal_entry(chart, EntryDraft(
            date=entry_date,
            description=description,
            lines=drafts,
            **fields,
        ))
        assert result.success, result.error
        return result.data

    return _make


@pytest.fixture
def simple_entry(make_entry):
    """Dr Cash 100 / Cr Other Income 100."""
    return make_entry([("1000", "100.00", "0"), ("4005", "0", "100.00")])


# =============================================================================
# Student Fixtures
# =============================================================================

@pytest.fixture
def student_id():
    return STUDENT_ID


@pytest.fixture
def lease_start(chart, student_id) -> JournalEntry:
    """
    Lease starting on the 1st: rent 600 (no proration), admin fee 20,
    security deposit 280. The student owes 900.
    """
    result = record_lease_start(
        chart,
        student_id,
        start_date=date(2025, 1, 1),
        monthly_rent=Decimal("600.00"),
        admin_fee=Decimal("20.00"),
        security_deposit=Decimal("280.00"),
        student_name="Test Student",
        application_id="APP-001",
    )
    assert result.success, result.error
    return result.data


@pytest.fixture
def rent_payment(chart, lease_start, student_id):
    """Confirmed 300 rent payment on 2025-01-05."""
    result = record_payment(
        chart,
        student_id,
        Decimal("300.00"),
        payment_type="rent",
        payment_date=date(2025, 1, 5),
        reference="RCPT-001",
    )
    assert result.success, result.error
    return result.data


@pytest.fixture
def application(db, student_id):
    return Application.objects.create(
        student_id=student_id,
        application_code="APP-001",
        status=Application.Status.APPROVED,
    )
