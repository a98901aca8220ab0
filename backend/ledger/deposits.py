# ledger/deposits.py
"""
Security deposits and the per-student ledger position.

reverse_unpaid_deposit() removes the part of a lease-start deposit the
student never paid:

    Dr 2020 Tenant Security Deposits   unpaid part
    Cr 1100-<student>                  unpaid part

get_status() summarises where a student stands.
"""
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Optional

from housing.models import Payment
from ledger import directory
from ledger.authz import require
from ledger.commands import CommandResult, command_failed, find_reversal, sync_entry_debtor, write_entry
from ledger.exceptions import (
    AccrualNotFound,
    AlreadyReversed,
    DebtorNotFound,
    DepositAlreadyPaid,
    LedgerError,
)
from ledger.models import Debtor, JournalEntry, JournalLine
from ledger.types import EntryDraft, LineDraft


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class DepositPosition:
    lease_start: Optional[JournalEntry]
    amount: Decimal = ZERO
    paid: Decimal = ZERO
    reversed: Decimal = ZERO
    # The whole lease-start accrual was reversed; no deposit is owed.
    lease_reversed: bool = False

    @property
    def outstanding(self) -> Decimal:
        if self.lease_reversed:
            return ZERO
        return max(ZERO, self.amount - self.paid - self.reversed)


@dataclass
class StudentLedgerStatus:
    student_id: str
    debtor_status: str
    deposit_amount: Decimal
    deposit_paid: Decimal
    deposit_outstanding: Decimal
    deposit_reversed: bool
    accrued: Decimal
    reversed: Decimal
    discounted: Decimal
    paid: Decimal
    outstanding: Decimal
    debtor_balance: Decimal

    def to_dict(self) -> dict:
        return {key: str(value) if isinstance(value, Decimal) else value for key, value in asdict(self).items()}


def _posted(ctx, student_id: str, *kinds):
    return ctx.query(JournalEntry).filter(
        student_id=student_id,
        kind__in=kinds,
        status=JournalEntry.Status.POSTED,
    )


def _line_sum(ctx, entries, account_code: str, side: str) -> Decimal:
    lines = ctx.query(JournalLine).filter(entry__in=entries, account_code=account_code)
    return sum((getattr(line, side) for line in lines), ZERO)


def deposit_position(ctx, student_id: str) -> DepositPosition:
    lease_start = _posted(ctx, student_id, JournalEntry.Kind.LEASE_START).order_by("date", "id").first()
    if lease_start is None:
        return DepositPosition(lease_start=None)

    amount = _line_sum(
        ctx, [lease_start], directory.DEPOSIT_LIABILITY_CODE, "credit"
    )
    paid = sum(
        (
            payment.amount
            for payment in ctx.query(Payment).filter(
                student_id=student_id,
                payment_type=Payment.PaymentType.DEPOSIT,
                status=Payment.Status.CONFIRMED,
            )
        ),
        ZERO,
    )
    reversed_amount = _line_sum(
        ctx,
        _posted(ctx, student_id, JournalEntry.Kind.DEPOSIT_REVERSAL),
        directory.DEPOSIT_LIABILITY_CODE,
        "debit",
    )
    return DepositPosition(
        lease_start=lease_start,
        amount=amount,
        paid=paid,
        reversed=reversed_amount,
        lease_reversed=find_reversal(ctx, lease_start) is not None,
    )


def reverse_unpaid_deposit(ctx, student_id: str, reason: str = "Student left without paying deposit") -> CommandResult:
    """
    Reverse the unpaid part of the student's security deposit.

    Returns:
        CommandResult with the reversal entry, or a failure
        (AccrualNotFound, AlreadyReversed, DepositAlreadyPaid)
    """
    require(ctx.actor, "ledger.adjust")
    try:
        with ctx.atomic():
            position = deposit_position(ctx, student_id)
            if position.lease_start is None or position.amount <= 0:
                raise AccrualNotFound(
                    f"No security deposit liability found for {student_id}.",
                    student_id=student_id,
                )
            if position.lease_reversed:
                raise AlreadyReversed(
                    f"Lease start for {student_id} was already reversed; no deposit is outstanding.",
                    student_id=student_id,
                    entry_id=position.lease_start.entry_id,
                )
            if position.reversed > 0:
                raise AlreadyReversed(
                    f"Security deposit for {student_id} was already reversed.",
                    student_id=student_id,
                )
            if position.paid >= position.amount:
                raise DepositAlreadyPaid(
                    f"Deposit was already paid ({position.paid} >= {position.amount}).",
                    student_id=student_id,
                )

            unpaid = position.amount - position.paid
            receivable = directory.ensure_student_receivable(ctx, student_id)
            metadata = {
                "studentId": student_id,
                "parentEntryId": position.lease_start.entry_id,
                "originalDepositAmount": str(position.amount),
                "paidAmount": str(position.paid),
            }
            entry = write_entry(ctx, EntryDraft(
                date=ctx.today,
                description=f"Security deposit reversal - {student_id} ({reason})"[:255],
                lines=[
                    LineDraft(
                        account_code=directory.DEPOSIT_LIABILITY_CODE,
                        debit=unpaid,
                        description="Security deposit liability reversal (unpaid deposit)",
                        metadata=dict(metadata),
                    ),
                    LineDraft(
                        account_code=receivable.code,
                        credit=unpaid,
                        description="AR reversal for unpaid security deposit",
                        metadata=dict(metadata),
                    ),
                ],
                kind=JournalEntry.Kind.DEPOSIT_REVERSAL,
                student_id=student_id,
            ))
            sync_entry_debtor(ctx, entry, entry.ordered_lines(), note=f"Security deposit reversal: {unpaid} ({reason})")
    except LedgerError as exc:
        return command_failed(ctx, "Reverse unpaid deposit", exc, student_id=student_id)

    logger.info(
        "Unpaid security deposit reversed",
        extra=ctx.log_extra(student_id=student_id, entry_id=entry.entry_id, amount=str(unpaid)),
    )
    return CommandResult.ok(entry)


def get_status(ctx, student_id: str) -> StudentLedgerStatus:
    """Ledger position of one student. Raises DebtorNotFound."""
    debtor = ctx.query(Debtor).filter(student_id=student_id).first()
    if debtor is None:
        raise DebtorNotFound(f"No debtor record for {student_id}.", student_id=student_id)

    receivable = directory.student_receivable_code(student_id)
    deposit = deposit_position(ctx, student_id)
    accrued = _line_sum(
        ctx, _posted(ctx, student_id, *JournalEntry.ACCRUAL_KINDS), receivable, "debit"
    )
    reversed_amount = _line_sum(
        ctx, _posted(ctx, student_id, JournalEntry.Kind.REVERSAL), receivable, "credit"
    )
    discounted = _line_sum(
        ctx, _posted(ctx, student_id, JournalEntry.Kind.ADJUSTMENT), receivable, "credit"
    )
    return StudentLedgerStatus(
        student_id=student_id,
        debtor_status=debtor.status,
        deposit_amount=deposit.amount,
        deposit_paid=deposit.paid,
        deposit_outstanding=deposit.outstanding,
        deposit_reversed=deposit.reversed > 0 or deposit.lease_reversed,
        accrued=accrued,
        reversed=reversed_amount,
        discounted=discounted,
        paid=debtor.total_paid,
        outstanding=max(ZERO, accrued - reversed_amount - discounted - deposit.reversed - debtor.total_paid),
        debtor_balance=debtor.current_balance,
    )
