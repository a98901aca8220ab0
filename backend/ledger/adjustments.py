# ledger/adjustments.py
"""
Negotiated-Adjustment Engine.

A negotiated discount is booked as a separate entry that reduces the
student's receivable; the original accrual is left untouched.

    Dr  <income/liability account for the payment type>   discount
    Cr  1100-<student>                                    discount
"""
import logging

from ledger import directory
from ledger.authz import require
from ledger.commands import CommandResult, command_failed, load_entry, write_entry
from ledger.debtors import sync_debtor
from ledger.exceptions import AccrualNotFound, EntryNotFound, InvalidAmounts, InvalidLine, LedgerError
from ledger.models import JournalEntry
from ledger.types import EntryDraft, LineDraft, money


logger = logging.getLogger(__name__)


def _amount(value, name: str):
    try:
        return money(value)
    except InvalidLine as exc:
        raise InvalidAmounts(f"{name}: {exc.message}", **{name: str(value)})


def apply_discount(
    ctx,
    student_id: str,
    original_amount,
    negotiated_amount,
    payment_type: str,
    linked_accrual_id=None,
    reason: str = "",
) -> CommandResult:
    """
    Record a negotiated reduction of what a student owes.

    Args:
        student_id: Student whose receivable is reduced
        original_amount: Amount originally charged
        negotiated_amount: Agreed amount, 0 < negotiated < original
        payment_type: rent / admin_fee / deposit / utilities / other
        linked_accrual_id: Accrual being discounted; the adjustment takes
            its date and the lines carry parentEntryId

    Returns:
        CommandResult with the adjustment JournalEntry, or a failure
        (InvalidAmounts, InvalidPaymentType, AccrualNotFound)
    """
    require(ctx.actor, "ledger.adjust")
    try:
        original = _amount(original_amount, "original_amount")
        negotiated = _amount(negotiated_amount, "negotiated_amount")
        if negotiated <= 0 or negotiated >= original:
            raise InvalidAmounts(
                f"Negotiated amount {negotiated} must be greater than 0 and less than {original}.",
                original_amount=str(original),
                negotiated_amount=str(negotiated),
            )
        discount = original - negotiated

        with ctx.atomic():
            account = directory.account_for_payment_type(ctx, payment_type)
            receivable = directory.ensure_student_receivable(ctx, student_id)

            entry_date = ctx.today
            metadata = {"studentId": student_id}
            if linked_accrual_id:
                try:
                    accrual = load_entry(ctx, linked_accrual_id)
                except EntryNotFound:
                    raise AccrualNotFound(
                        f"Linked accrual {linked_accrual_id} not found.",
                        entry_id=str(linked_accrual_id),
                    )
                entry_date = accrual.date
                metadata["parentEntryId"] = accrual.entry_id

            description = f"Negotiated discount ({payment_type}) for {student_id}: {original} -> {negotiated}"
            entry = write_entry(ctx, EntryDraft(
                date=entry_date,
                description=description[:255],
                lines=[
                    LineDraft(
                        account_code=account.code,
                        debit=discount,
                        description=f"Negotiated discount - {payment_type}",
                        metadata=dict(metadata),
                    ),
                    LineDraft(
                        account_code=receivable.code,
                        credit=discount,
                        description=f"Reduce receivable - {student_id}",
                        metadata=dict(metadata),
                    ),
                ],
                kind=JournalEntry.Kind.ADJUSTMENT,
                student_id=student_id,
            ))

            note = f"Negotiated {payment_type}: {original} -> {negotiated}"
            if reason:
                note = f"{note} ({reason})"
            sync_debtor(
                ctx,
                student_id,
                total_owed_delta=-discount,
                note=note,
                original_outstanding=negotiated,
            )
    except LedgerError as exc:
        return command_failed(ctx, "Apply discount", exc, student_id=student_id)

    logger.info(
        "Negotiated discount applied",
        extra=ctx.log_extra(
            entry_id=entry.entry_id,
            student_id=student_id,
            discount=str(discount),
        ),
    )
    return CommandResult.ok(entry)
