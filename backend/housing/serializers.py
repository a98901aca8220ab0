# housing/serializers.py
"""Output serializers for housing records (used in deletion and archive snapshots)."""

from rest_framework import serializers

from housing.models import Application, Expense, Payment


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id", "student_id", "amount", "payment_type", "date",
            "method", "status", "reference", "created_at",
        ]
        read_only_fields = fields


class ExpenseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Expense
        fields = [
            "id", "description", "vendor_name", "amount", "date",
            "expense_account_code", "status", "reference", "created_at",
        ]
        read_only_fields = fields


class ApplicationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Application
        fields = ["id", "student_id", "application_code", "status", "expired_at", "created_at"]
        read_only_fields = fields
