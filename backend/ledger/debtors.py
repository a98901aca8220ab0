# ledger/debtors.py
"""
Debtor Balance Synchronizer.

``recompute`` is the only place a debtor's current_balance and
overdue_amount are calculated. It is pure: it returns an updated,
unsaved copy and never touches the database. ``sync_debtor`` is the
persisting wrapper the engines call inside their own transaction.
"""
import copy
import logging
from decimal import Decimal
from typing import Tuple

from ledger import directory
from ledger.models import Debtor, JournalEntry, MONEY_Q


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def recompute(debtor: Debtor, total_owed_delta=ZERO, total_paid_delta=ZERO) -> Debtor:
    """
    Apply owed/paid deltas and derive the balance fields.

    Totals are signed running sums so every delta can be undone exactly;
    only the derived current_balance = max(0, owed - paid) is floored.
    overdue_amount follows current_balance.
    """
    updated = copy.copy(debtor)
    updated.total_owed = (Decimal(debtor.total_owed) + Decimal(total_owed_delta)).quantize(MONEY_Q)
    updated.total_paid = (Decimal(debtor.total_paid) + Decimal(total_paid_delta)).quantize(MONEY_Q)
    updated.current_balance = Debtor.derive_balance(updated.total_owed, updated.total_paid)
    updated.overdue_amount = updated.current_balance
    return updated


def get_or_create_debtor(ctx, student_id: str, student_name: str = "") -> Debtor:
    debtor = ctx.query(Debtor).select_for_update().filter(student_id=student_id).first()
    if debtor is None:
        directory.ensure_student_receivable(ctx, student_id, student_name)
        debtor = ctx.query(Debtor).create(
            student_id=student_id,
            student_name=student_name,
            account_code=directory.student_receivable_code(student_id),
        )
    return debtor


def sync_debtor(
    ctx,
    student_id: str,
    total_owed_delta=ZERO,
    total_paid_delta=ZERO,
    note: str = "",
    **changes,
) -> Debtor:
    """
    Persist a change in a debtor's financial position.

    Must run inside the caller's transaction so the debtor update
    commits or rolls back with the journal entries that caused it.
    Extra keyword arguments (status, original_outstanding) are applied
    to the record as-is.
    """
    debtor = get_or_create_debtor(ctx, student_id)
    updated = recompute(debtor, total_owed_delta, total_paid_delta)
    for field_name, value in changes.items():
        setattr(updated, field_name, value)
    if note:
        stamp = ctx.today.isoformat()
        updated.notes = f"{updated.notes}\n[{stamp}] {note}".strip()
    updated.save(using=ctx.using)
    logger.info(
        "Debtor synchronised",
        extra=ctx.log_extra(
            student_id=student_id,
            total_owed=str(updated.total_owed),
            total_paid=str(updated.total_paid),
            current_balance=str(updated.current_balance),
        ),
    )
    return updated


def entry_debtor_deltas(entry: JournalEntry, lines, receivable_code: str) -> Tuple[Decimal, Decimal]:
    """
    (owed_delta, paid_delta) that posting ``entry`` applies to a debtor.

    Only lines on the student's receivable count. Payments reduce the
    receivable through total_paid; everything else (accruals,
    adjustments, deposit reversals) moves total_owed.

    Forfeiture lines (metadata isForfeiture) carry no receivable: payments
    turned into Forfeited Income are added back to total_owed, so the net
    credit on that account is an owed delta. A reversal of the forfeiture
    mirrors it and moves total_owed back.
    """
    net_debit = sum(
        (Decimal(line.debit) - Decimal(line.credit) for line in lines if line.account_code == receivable_code),
        ZERO,
    )
    forfeited = sum(
        (
            Decimal(line.credit) - Decimal(line.debit)
            for line in lines
            if line.account_code == directory.FORFEITED_INCOME_CODE and line.metadata.get("isForfeiture")
        ),
        ZERO,
    )
    if entry.kind == JournalEntry.Kind.PAYMENT:
        return forfeited, -net_debit
    return net_debit + forfeited, ZERO
