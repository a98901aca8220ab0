# ledger/models.py
"""
Ledger models.

Models enforce TRUE INVARIANTS only (things that hold regardless of
which operation is running). Workflow rules (who may reverse, what a
cascade may remove) live in ledger.policies and the command modules.

Models:
- Account: Chart of Accounts (the Account Directory's storage)
- LedgerTransaction: Optional parent grouping entries by reference
- JournalEntry: Balanced set of lines recording one financial event
- JournalLine: One account-level debit or credit within an entry
- Debtor: Per-student running balance
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


MONEY_Q = Decimal("0.01")


def balance_tolerance() -> Decimal:
    return Decimal(str(getattr(settings, "LEDGER_BALANCE_TOLERANCE", "0.01")))


class Account(models.Model):
    """
    Chart of Accounts entry.

    Codes are the lookup key used by journal lines. Student receivables
    are sub-accounts created on demand with codes like "1100-<student>".
    """

    class AccountType(models.TextChoices):
        ASSET = "Asset", "Asset"
        LIABILITY = "Liability", "Liability"
        EQUITY = "Equity", "Equity"
        INCOME = "Income", "Income"
        EXPENSE = "Expense", "Expense"

    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    account_type = models.CharField(max_length=20, choices=AccountType.choices)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"


class LedgerTransaction(models.Model):
    """
    Parent record grouping the entries that share one transaction reference.

    Entries are not foreign-keyed to it: the reference is a correlation
    key, and a parent without any remaining entries is removed by the
    cascade deletion engine.
    """

    reference = models.CharField(max_length=100, unique=True)
    date = models.DateField()
    description = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]

    def __str__(self):
        return f"TXN {self.reference} ({self.date})"


class JournalEntry(models.Model):
    """
    Journal entry header.

    Lifecycle: created POSTED by a recording operation; the only later
    changes are POSTED -> VOIDED and line edits that re-validate balance.
    Entries are removed only by ledger.cascade.delete_with_cascade.
    """

    class Status(models.TextChoices):
        POSTED = "posted", "Posted"
        VOIDED = "voided", "Voided"

    class Kind(models.TextChoices):
        MANUAL = "manual", "Manual"
        LEASE_START = "lease_start", "Lease Start Accrual"
        MONTHLY_ACCRUAL = "monthly_accrual", "Monthly Accrual"
        PAYMENT = "payment", "Payment"
        EXPENSE = "expense", "Expense"
        REVERSAL = "reversal", "Reversal"
        ADJUSTMENT = "adjustment", "Negotiated Adjustment"
        DEPOSIT_REVERSAL = "deposit_reversal", "Security Deposit Reversal"
        FORFEITURE = "forfeiture", "Forfeiture Reclassification"

    ACCRUAL_KINDS = (Kind.LEASE_START, Kind.MONTHLY_ACCRUAL)

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    # Correlation key supplied by the caller. Not unique.
    transaction_reference = models.CharField(max_length=100, blank=True, default="", db_index=True)

    date = models.DateField()
    description = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.POSTED)
    kind = models.CharField(max_length=20, choices=Kind.choices, default=Kind.MANUAL)
    student_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    # Explicit reference to the record that caused this entry
    source_kind = models.CharField(max_length=50, blank=True, default="")
    source_id = models.CharField(max_length=100, blank=True, default="")

    total_debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    voided_at = models.DateTimeField(null=True, blank=True)
    voided_by = models.CharField(max_length=255, blank=True, default="")
    void_reason = models.CharField(max_length=255, blank=True, default="")

    created_by = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date", "id"]
        indexes = [
            models.Index(fields=["source_kind", "source_id"]),
            models.Index(fields=["student_id", "kind", "status"]),
        ]
        verbose_name_plural = "journal entries"

    def __str__(self):
        return f"JE {self.public_id} ({self.date}) {self.status}"

    @property
    def entry_id(self) -> str:
        return str(self.public_id)

    @property
    def is_posted(self) -> bool:
        return self.status == self.Status.POSTED

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debit - self.total_credit) < balance_tolerance()

    def ordered_lines(self):
        return list(self.lines.order_by("line_no"))

    def save(self, *args, **kwargs):
        """
        Invariants enforced:
            - cached totals are balanced within LEDGER_BALANCE_TOLERANCE
            - cached totals are non-negative
        """
        if self.total_debit < 0 or self.total_credit < 0:
            raise ValidationError("Journal entry totals cannot be negative.")
        if not self.is_balanced:
            raise ValidationError(
                f"Entry is not balanced. Debit={self.total_debit} Credit={self.total_credit}"
            )
        super().save(*args, **kwargs)


class JournalLine(models.Model):
    """
    Individual line within a journal entry.

    account_name/account_type are snapshots taken from the Account
    Directory when the line was written. ``metadata`` carries explicit
    linkage keys (parentEntryId, originalEntryId, isReversal,
    isForfeiture, studentId, applicationId).
    """

    entry = models.ForeignKey(JournalEntry, on_delete=models.CASCADE, related_name="lines")
    line_no = models.PositiveIntegerField()

    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="journal_lines")
    account_code = models.CharField(max_length=64)
    account_name = models.CharField(max_length=255)
    account_type = models.CharField(max_length=20)

    description = models.CharField(max_length=255, blank=True, default="")
    debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["entry", "line_no"]
        constraints = [
            models.UniqueConstraint(fields=["entry", "line_no"], name="uniq_journal_line_no"),
            models.CheckConstraint(
                condition=~(Q(debit__gt=0) & Q(credit__gt=0)),
                name="chk_line_not_both_debit_credit",
            ),
            models.CheckConstraint(
                condition=~(Q(debit=0) & Q(credit=0)),
                name="chk_line_not_both_zero",
            ),
            models.CheckConstraint(
                condition=Q(debit__gte=0) & Q(credit__gte=0),
                name="chk_line_non_negative",
            ),
        ]

    def __str__(self):
        return f"JE {self.entry_id} L{self.line_no} {self.account_code}"


class Debtor(models.Model):
    """
    Per-student running balance.

    current_balance and overdue_amount are derived from total_owed and
    total_paid by ledger.debtors.recompute; save() refuses a record
    whose stored balance disagrees with its totals.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        OVERDUE = "overdue", "Overdue"
        DEFAULTED = "defaulted", "Defaulted"
        PAID = "paid", "Paid"
        FORFEITED = "forfeited", "Forfeited"

    student_id = models.CharField(max_length=64, unique=True)
    student_name = models.CharField(max_length=255, blank=True, default="")
    account_code = models.CharField(max_length=64)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.ACTIVE)

    total_owed = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_paid = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    current_balance = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    overdue_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Negotiated amount that replaced the original outstanding, if any
    original_outstanding = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)

    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["student_id"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["current_balance"]),
        ]

    def __str__(self):
        return f"Debtor {self.student_id} balance={self.current_balance}"

    @staticmethod
    def derive_balance(total_owed: Decimal, total_paid: Decimal) -> Decimal:
        return max(Decimal("0.00"), (total_owed - total_paid).quantize(MONEY_Q))

    def save(self, *args, **kwargs):
        expected = self.derive_balance(Decimal(self.total_owed), Decimal(self.total_paid))
        if Decimal(self.current_balance) != expected or Decimal(self.overdue_amount) != expected:
            raise ValidationError(
                "Debtor balance is derived from totals; use ledger.debtors.recompute."
            )
        super().save(*args, **kwargs)
