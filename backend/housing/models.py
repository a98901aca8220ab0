# housing/models.py
"""
Business records the ledger reads, posts from, or deletes.

Only the fields the ledger needs are modelled here; the approval
workflow, vendor management and file storage live elsewhere.
"""

from decimal import Decimal

from django.db import models
from django.utils import timezone


class Payment(models.Model):
    """Money received from a student."""

    class PaymentType(models.TextChoices):
        RENT = "rent", "Rent"
        ADMIN_FEE = "admin_fee", "Admin Fee"
        DEPOSIT = "deposit", "Security Deposit"
        UTILITIES = "utilities", "Utilities"
        OTHER = "other", "Other"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        REJECTED = "rejected", "Rejected"

    student_id = models.CharField(max_length=64, db_index=True)
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    payment_type = models.CharField(max_length=20, choices=PaymentType.choices, default=PaymentType.RENT)
    date = models.DateField()
    method = models.CharField(max_length=50, blank=True, default="")
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.CONFIRMED)
    reference = models.CharField(max_length=100, blank=True, default="", db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["date", "id"]

    def __str__(self):
        return f"Payment {self.pk} {self.student_id} {self.amount}"


class Expense(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        PAID = "paid", "Paid"

    description = models.CharField(max_length=255)
    vendor_name = models.CharField(max_length=255, blank=True, default="")
    amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    date = models.DateField()
    expense_account_code = models.CharField(max_length=64)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.APPROVED)
    reference = models.CharField(max_length=100, blank=True, default="", db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["date", "id"]

    def __str__(self):
        return f"Expense {self.pk} {self.description} {self.amount}"


class Application(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"
        EXPIRED = "expired", "Expired"

    student_id = models.CharField(max_length=64, db_index=True)
    application_code = models.CharField(max_length=64, unique=True)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.PENDING)
    expired_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"Application {self.application_code} ({self.status})"


class StudentArchive(models.Model):
    """
    Frozen copy of a student's ledger position at forfeiture time.

    Write-once: existing rows cannot be modified or deleted.
    """

    student_id = models.CharField(max_length=64, db_index=True)
    reason = models.TextField(blank=True, default="")
    snapshot = models.JSONField(default=dict)
    archived_by = models.CharField(max_length=255)
    archived_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["archived_at", "id"]

    def __str__(self):
        return f"Archive {self.student_id} @{self.archived_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Student archives are immutable and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Student archives are immutable and cannot be deleted.")
