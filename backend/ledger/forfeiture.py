# ledger/forfeiture.py
"""
Forfeiture Orchestrator.

When a student forfeits (no-show, cancelled lease) the ledger is
brought to the position "nothing is owed for the lease, money already
received is income":

    1. find the student's posted accruals that are not reversed yet
    2. reverse each one
    3. reclassify confirmed payments
           Dr 2200 Advance Payment Liability
           Cr 4003 Forfeited Income
    4. expire the student's applications
    5. archive a snapshot of the student's ledger position
    6. mark the debtor forfeited

Steps 1-3 and their debtor changes form one transaction. Steps 4-6
each run in their own savepoint and report their outcome separately.
Running the orchestrator again is safe: every step skips work that is
already done.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from django.db import DatabaseError
from django.utils import timezone

from housing.models import Application, Payment, StudentArchive
from housing.serializers import ApplicationSerializer, PaymentSerializer
from ledger import directory
from ledger.authz import require
from ledger.commands import find_reversal, reverse_entry, sync_entry_debtor, write_entry
from ledger.debtors import get_or_create_debtor, sync_debtor
from ledger.exceptions import LedgerError
from ledger.models import Debtor, JournalEntry, JournalLine
from ledger.serializers import DebtorSerializer, JournalEntrySerializer
from ledger.types import EntryDraft, LineDraft


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class StepOutcome:
    success: bool
    detail: str = ""
    error: str = ""

    def to_dict(self) -> dict:
        return {"success": self.success, "detail": self.detail, "error": self.error}


@dataclass
class ForfeitureResult:
    student_id: str
    reversed_entries: List[str] = field(default_factory=list)
    reversed_amount: Decimal = ZERO
    forfeiture_entry_id: Optional[str] = None
    forfeited_amount: Decimal = ZERO
    expired_applications: int = 0
    archive_id: Optional[int] = None
    steps: Dict[str, StepOutcome] = field(default_factory=dict)
    error: str = ""
    error_code: str = ""

    @property
    def success(self) -> bool:
        return not self.error and all(step.success for step in self.steps.values())

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "success": self.success,
            "reversed_entries": list(self.reversed_entries),
            "reversed_amount": str(self.reversed_amount),
            "forfeiture_entry_id": self.forfeiture_entry_id,
            "forfeited_amount": str(self.forfeited_amount),
            "expired_applications": self.expired_applications,
            "archive_id": self.archive_id,
            "steps": {name: step.to_dict() for name, step in self.steps.items()},
            "error": self.error,
            "error_code": self.error_code,
        }


# =============================================================================
# Steps 1-3: ledger
# =============================================================================

def unreversed_accruals(ctx, student_id: str):
    """Posted accruals for the student with no reversal yet."""
    reversed_ids = list(
        ctx.query(JournalLine)
        .filter(entry__student_id=student_id, metadata__isReversal=True)
        .values_list("metadata__originalEntryId", flat=True)
        .distinct()
    )
    return (
        ctx.query(JournalEntry)
        .filter(
            student_id=student_id,
            kind__in=JournalEntry.ACCRUAL_KINDS,
            status=JournalEntry.Status.POSTED,
        )
        .exclude(public_id__in=[entry_id for entry_id in reversed_ids if entry_id])
        .order_by("date", "id")
    )


def _receivable_amount(entry: JournalEntry) -> Decimal:
    receivable = directory.student_receivable_code(entry.student_id)
    return sum(
        (line.debit - line.credit for line in entry.ordered_lines() if line.account_code == receivable),
        ZERO,
    )


def _reverse_accruals(ctx, student_id: str, reason: str, result: ForfeitureResult) -> None:
    for accrual in unreversed_accruals(ctx, student_id):
        reversal = reverse_entry(ctx, accrual, reason=f"Forfeiture: {reason}".strip())
        result.reversed_entries.append(accrual.entry_id)
        result.reversed_amount += _receivable_amount(accrual)
        logger.info(
            "Accrual reversed for forfeiture",
            extra=ctx.log_extra(student_id=student_id, entry_id=accrual.entry_id, reversal_id=reversal.entry_id),
        )


def _live_forfeiture(ctx, student_id: str) -> Optional[JournalEntry]:
    """The student's posted, unreversed reclassification entry, if any."""
    candidates = ctx.query(JournalEntry).filter(
        student_id=student_id,
        kind=JournalEntry.Kind.FORFEITURE,
        status=JournalEntry.Status.POSTED,
    ).order_by("date", "id")
    for entry in candidates:
        if find_reversal(ctx, entry) is None:
            return entry
    return None


def _reclassify_payments(ctx, student_id: str, reason: str, result: ForfeitureResult) -> None:
    existing = _live_forfeiture(ctx, student_id)
    if existing is not None:
        result.forfeiture_entry_id = existing.entry_id
        result.forfeited_amount = existing.total_debit
        return

    payments = list(
        ctx.query(Payment)
        .filter(student_id=student_id, status=Payment.Status.CONFIRMED)
        .order_by("date", "id")
    )
    total = sum((payment.amount for payment in payments), ZERO)
    if total <= 0:
        return

    liability = directory.ensure_chart_account(ctx, directory.ADVANCE_PAYMENT_LIABILITY_CODE)
    income = directory.ensure_chart_account(ctx, directory.FORFEITED_INCOME_CODE)
    metadata = {"isForfeiture": True, "studentId": student_id}
    entry = write_entry(ctx, EntryDraft(
        date=payments[0].date,
        description=f"Forfeiture of payments by {student_id}: {reason}"[:255],
        lines=[
            LineDraft(
                account_code=liability.code,
                debit=total,
                description="Forfeited advance payments",
                metadata=dict(metadata),
            ),
            LineDraft(
                account_code=income.code,
                credit=total,
                description="Forfeited income",
                metadata=dict(metadata),
            ),
        ],
        kind=JournalEntry.Kind.FORFEITURE,
        student_id=student_id,
        source_kind="student",
        source_id=student_id,
    ))
    sync_entry_debtor(ctx, entry, entry.ordered_lines(), note=f"Forfeited {total} of payments")
    result.forfeiture_entry_id = entry.entry_id
    result.forfeited_amount = total


# =============================================================================
# Steps 4-6: records
# =============================================================================

def _expire_applications(ctx, student_id: str, result: ForfeitureResult) -> str:
    count = (
        ctx.query(Application)
        .filter(student_id=student_id)
        .exclude(status=Application.Status.EXPIRED)
        .update(status=Application.Status.EXPIRED, expired_at=timezone.now())
    )
    result.expired_applications = count
    return f"{count} application(s) expired"


def _archive_student(ctx, student_id: str, reason: str, result: ForfeitureResult) -> str:
    existing = ctx.query(StudentArchive).filter(student_id=student_id).first()
    if existing is not None:
        result.archive_id = existing.pk
        return "already archived"

    debtor = ctx.query(Debtor).filter(student_id=student_id).first()
    entries = ctx.query(JournalEntry).filter(student_id=student_id).prefetch_related("lines")
    snapshot = {
        "debtor": DebtorSerializer(debtor).data if debtor else None,
        "entries": JournalEntrySerializer(entries, many=True).data,
        "payments": PaymentSerializer(ctx.query(Payment).filter(student_id=student_id), many=True).data,
        "applications": ApplicationSerializer(ctx.query(Application).filter(student_id=student_id), many=True).data,
        "forfeiture": {
            "reversed_entries": list(result.reversed_entries),
            "forfeiture_entry_id": result.forfeiture_entry_id,
            "forfeited_amount": str(result.forfeited_amount),
        },
    }
    archive = StudentArchive(
        student_id=student_id,
        reason=reason,
        snapshot=snapshot,
        archived_by=ctx.actor.label,
    )
    archive.save(using=ctx.using)
    result.archive_id = archive.pk
    return f"archive {archive.pk} created"


def _mark_forfeited(ctx, student_id: str, reason: str) -> str:
    debtor = get_or_create_debtor(ctx, student_id)
    if debtor.status == Debtor.Status.FORFEITED:
        return "already forfeited"
    sync_debtor(ctx, student_id, note=f"Forfeited: {reason}", status=Debtor.Status.FORFEITED)
    return "debtor marked forfeited"


def _run_step(ctx, result: ForfeitureResult, name: str, step) -> None:
    try:
        with ctx.atomic():
            detail = step()
    except (LedgerError, DatabaseError, ValueError) as exc:
        result.steps[name] = StepOutcome(success=False, error=str(exc))
        logger.warning(
            "Forfeiture step failed",
            extra=ctx.log_extra(step=name, student_id=result.student_id, error=str(exc)),
        )
        return
    result.steps[name] = StepOutcome(success=True, detail=detail)


def forfeit_student(ctx, student_id: str, reason: str = "") -> ForfeitureResult:
    """
    Run the forfeiture steps for one student.

    Returns:
        ForfeitureResult with per-step outcomes. If the ledger steps
        (1-3) fail, nothing is changed and the record steps do not run.
    """
    require(ctx.actor, "ledger.forfeit")
    result = ForfeitureResult(student_id=student_id)

    try:
        with ctx.atomic():
            _reverse_accruals(ctx, student_id, reason, result)
            _reclassify_payments(ctx, student_id, reason, result)
    except LedgerError as exc:
        result.reversed_entries = []
        result.reversed_amount = ZERO
        result.forfeiture_entry_id = None
        result.forfeited_amount = ZERO
        result.error = exc.message
        result.error_code = exc.code
        result.steps["ledger"] = StepOutcome(success=False, error=exc.message)
        logger.warning(
            "Forfeiture ledger steps failed",
            extra=ctx.log_extra(student_id=student_id, error_code=exc.code),
        )
        return result

    result.steps["ledger"] = StepOutcome(
        success=True,
        detail=f"{len(result.reversed_entries)} accrual(s) reversed, {result.forfeited_amount} forfeited",
    )
    _run_step(ctx, result, "expire_applications", lambda: _expire_applications(ctx, student_id, result))
    _run_step(ctx, result, "archive", lambda: _archive_student(ctx, student_id, reason, result))
    _run_step(ctx, result, "mark_forfeited", lambda: _mark_forfeited(ctx, student_id, reason))

    logger.info(
        "Student forfeited",
        extra=ctx.log_extra(
            student_id=student_id,
            success=result.success,
            reversed_entries=len(result.reversed_entries),
            forfeited_amount=str(result.forfeited_amount),
        ),
    )
    return result
