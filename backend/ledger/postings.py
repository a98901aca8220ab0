# ledger/postings.py
"""
Posting adapters: turn business events into journal entries.

Each adapter builds an EntryDraft, posts it through the store's single
validation gate and, where a student is involved, moves the debtor in
the same transaction.

    lease start      Dr 1100-<student>  Cr 4001 rent (prorated)
                     Dr 1100-<student>  Cr 4002 admin fee
                     Dr 1100-<student>  Cr 2020 security deposit
    monthly accrual  Dr 1100-<student>  Cr 4001 rent (+ 4002 admin fee)
    payment          Dr 1000/1001       Cr 1100-<student>
    expense          Dr <expense>       Cr 2000 (or 1000 when paid)
"""
import calendar
import logging
from datetime import date
from decimal import Decimal

from housing.models import Expense, Payment
from ledger import directory
from ledger.authz import require
from ledger.commands import CommandResult, command_failed, sync_entry_debtor, write_entry
from ledger.debtors import get_or_create_debtor
from ledger.exceptions import LedgerConflictError, LedgerError, InvalidAmounts
from ledger.models import JournalEntry
from ledger.types import EntryDraft, LineDraft, money, optional_date


logger = logging.getLogger(__name__)

CASH_CODE = "1000"
BANK_CODE = "1001"
ACCOUNTS_PAYABLE_CODE = "2000"

BANK_METHODS = {"bank_transfer", "ecocash", "card", "online"}


def prorated_rent(monthly_rent, start_date: date) -> Decimal:
    """Rent for the days from ``start_date`` to the end of its month."""
    days_in_month = calendar.monthrange(start_date.year, start_date.month)[1]
    days = days_in_month - start_date.day + 1
    return money(money(monthly_rent) * days / days_in_month)


def _receivable_line(student_id, receivable_code, amount, description, **metadata) -> LineDraft:
    return LineDraft(
        account_code=receivable_code,
        debit=amount,
        description=description,
        metadata={"studentId": student_id, **metadata},
    )


def _post_student_entry(ctx, draft: EntryDraft, student_name: str = "") -> JournalEntry:
    get_or_create_debtor(ctx, draft.student_id, student_name)
    entry = write_entry(ctx, draft)
    sync_entry_debtor(ctx, entry, draft.lines, note=draft.description)
    return entry


def _charge_lines(ctx, student_id, receivable_code, charges, **metadata):
    """Receivable debit + income/liability credit for each non-zero charge."""
    lines = []
    for payment_type, amount, label in charges:
        amount = money(amount)
        if amount <= 0:
            continue
        account = directory.account_for_payment_type(ctx, payment_type)
        lines.append(_receivable_line(student_id, receivable_code, amount, label, paymentType=payment_type, **metadata))
        lines.append(LineDraft(
            account_code=account.code,
            credit=amount,
            description=label,
            metadata={"studentId": student_id, "paymentType": payment_type, **metadata},
        ))
    return lines


def record_lease_start(
    ctx,
    student_id: str,
    start_date,
    monthly_rent,
    admin_fee=0,
    security_deposit=0,
    student_name: str = "",
    application_id: str = "",
) -> CommandResult:
    """
    Accrue what a student owes when the lease starts.

    The first month's rent is prorated from the start date.
    """
    require(ctx.actor, "ledger.post")
    try:
        start_date = optional_date(start_date)
        rent = prorated_rent(monthly_rent, start_date)
        extra = {"applicationId": application_id} if application_id else {}

        with ctx.atomic():
            receivable = directory.ensure_student_receivable(ctx, student_id, student_name)
            existing = ctx.query(JournalEntry).filter(
                student_id=student_id,
                kind=JournalEntry.Kind.LEASE_START,
                status=JournalEntry.Status.POSTED,
            ).first()
            if existing is not None:
                raise LedgerConflictError(
                    f"Lease start already recorded for {student_id}.",
                    entry_id=existing.entry_id,
                )
            lines = _charge_lines(ctx, student_id, receivable.code, [
                ("rent", rent, f"Prorated rent from {start_date.isoformat()}"),
                ("admin_fee", admin_fee, "Administrative fee"),
                ("deposit", security_deposit, "Security deposit"),
            ], **extra)
            entry = _post_student_entry(ctx, EntryDraft(
                date=start_date,
                description=f"Lease start - {student_name or student_id}",
                lines=lines,
                transaction_reference=f"LEASE-{student_id}",
                kind=JournalEntry.Kind.LEASE_START,
                student_id=student_id,
            ), student_name)
    except LedgerError as exc:
        return command_failed(ctx, "Record lease start", exc, student_id=student_id)
    return CommandResult.ok(entry)


def record_monthly_accrual(
    ctx,
    student_id: str,
    year: int,
    month: int,
    monthly_rent,
    admin_fee=0,
) -> CommandResult:
    """Accrue a full month's rent on the first of the month. One per student per month."""
    require(ctx.actor, "ledger.post")
    period = f"{year:04d}-{month:02d}"
    try:
        with ctx.atomic():
            receivable = directory.ensure_student_receivable(ctx, student_id)
            accrual_date = date(year, month, 1)
            already = ctx.query(JournalEntry).filter(
                student_id=student_id,
                kind=JournalEntry.Kind.MONTHLY_ACCRUAL,
                status=JournalEntry.Status.POSTED,
                date=accrual_date,
            ).exists()
            if already:
                raise LedgerConflictError(
                    f"Monthly accrual for {period} already recorded for {student_id}.",
                    period=period,
                )
            lines = _charge_lines(ctx, student_id, receivable.code, [
                ("rent", monthly_rent, f"Rent {period}"),
                ("admin_fee", admin_fee, f"Administrative fee {period}"),
            ], period=period)
            entry = _post_student_entry(ctx, EntryDraft(
                date=accrual_date,
                description=f"Monthly rent accrual {period} - {student_id}",
                lines=lines,
                transaction_reference=f"ACCRUAL-{student_id}-{period}",
                kind=JournalEntry.Kind.MONTHLY_ACCRUAL,
                student_id=student_id,
            ))
    except LedgerError as exc:
        return command_failed(ctx, "Record monthly accrual", exc, student_id=student_id, period=period)
    return CommandResult.ok(entry)


def record_payment(
    ctx,
    student_id: str,
    amount,
    payment_type: str = Payment.PaymentType.RENT,
    payment_date=None,
    method: str = "cash",
    reference: str = "",
) -> CommandResult:
    """
    Create a confirmed Payment and its receipt entry.

    Returns:
        CommandResult with {"payment": Payment, "entry": JournalEntry}
    """
    require(ctx.actor, "ledger.post")
    try:
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmounts(f"Payment amount must be positive, got {amount}.", amount=str(amount))
        # Resolves the payment type early so an unknown type fails before any write.
        directory.account_for_payment_type(ctx, payment_type)
        payment_date = optional_date(payment_date) or ctx.today

        with ctx.atomic():
            receivable = directory.ensure_student_receivable(ctx, student_id)
            cash = directory.ensure_chart_account(ctx, BANK_CODE if method in BANK_METHODS else CASH_CODE)
            payment = ctx.query(Payment).create(
                student_id=student_id,
                amount=amount,
                payment_type=payment_type,
                date=payment_date,
                method=method,
                status=Payment.Status.CONFIRMED,
                reference=reference,
            )
            metadata = {"studentId": student_id, "paymentType": payment_type, "paymentId": payment.pk}
            entry = _post_student_entry(ctx, EntryDraft(
                date=payment_date,
                description=f"Payment ({payment_type}) from {student_id}",
                lines=[
                    LineDraft(account_code=cash.code, debit=amount, description=f"{method} receipt", metadata=metadata),
                    LineDraft(
                        account_code=receivable.code,
                        credit=amount,
                        description=f"{payment_type} payment",
                        metadata=metadata,
                    ),
                ],
                transaction_reference=reference,
                kind=JournalEntry.Kind.PAYMENT,
                student_id=student_id,
                source_kind="payment",
                source_id=str(payment.pk),
            ))
    except LedgerError as exc:
        return command_failed(ctx, "Record payment", exc, student_id=student_id)

    logger.info(
        "Payment recorded",
        extra=ctx.log_extra(payment_id=payment.pk, entry_id=entry.entry_id, student_id=student_id),
    )
    return CommandResult.ok({"payment": payment, "entry": entry})


def record_expense(
    ctx,
    description: str,
    amount,
    expense_account_code: str,
    expense_date=None,
    vendor_name: str = "",
    paid: bool = False,
    reference: str = "",
) -> CommandResult:
    """
    Create an Expense and its entry.

    Unpaid expenses are credited to Accounts Payable, paid ones to Cash.

    Returns:
        CommandResult with {"expense": Expense, "entry": JournalEntry}
    """
    require(ctx.actor, "ledger.post")
    try:
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmounts(f"Expense amount must be positive, got {amount}.", amount=str(amount))
        expense_date = optional_date(expense_date) or ctx.today

        with ctx.atomic():
            counter = directory.ensure_chart_account(ctx, CASH_CODE if paid else ACCOUNTS_PAYABLE_CODE)
            expense = ctx.query(Expense).create(
                description=description,
                vendor_name=vendor_name,
                amount=amount,
                date=expense_date,
                expense_account_code=expense_account_code,
                status=Expense.Status.PAID if paid else Expense.Status.APPROVED,
                reference=reference,
            )
            metadata = {"expenseId": expense.pk}
            entry = write_entry(ctx, EntryDraft(
                date=expense_date,
                description=description[:255],
                lines=[
                    LineDraft(account_code=expense_account_code, debit=amount, description=description, metadata=metadata),
                    LineDraft(
                        account_code=counter.code,
                        credit=amount,
                        description=vendor_name or description,
                        metadata=metadata,
                    ),
                ],
                transaction_reference=reference,
                kind=JournalEntry.Kind.EXPENSE,
                source_kind="expense",
                source_id=str(expense.pk),
            ))
    except LedgerError as exc:
        return command_failed(ctx, "Record expense", exc)

    logger.info("Expense recorded", extra=ctx.log_extra(expense_id=expense.pk, entry_id=entry.entry_id))
    return CommandResult.ok({"expense": expense, "entry": entry})
