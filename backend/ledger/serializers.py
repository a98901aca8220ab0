# ledger/serializers.py
"""
Serializers for the ledger.

Used for:
1. Input validation of entry drafts handed in as plain dicts
2. Output formatting, including the snapshots stored in DeletionRecord
   and StudentArchive

Balance, line count and account resolution are NOT checked here;
ledger.policies.validate_entry_lines is the only gate for those.
"""

from rest_framework import serializers

from ledger.models import Debtor, JournalEntry, JournalLine
from ledger.types import EntryDraft, LineDraft


# =============================================================================
# Output
# =============================================================================

class JournalLineSerializer(serializers.ModelSerializer):
    """Serializer for individual journal lines."""

    class Meta:
        model = JournalLine
        fields = [
            "line_no", "account_code", "account_name", "account_type",
            "description", "debit", "credit", "metadata",
        ]
        read_only_fields = fields


class JournalEntrySerializer(serializers.ModelSerializer):
    """
    Full journal entry with nested lines in insertion order.
    Used for retrieval and for deletion/archive snapshots.
    """
    id = serializers.CharField(source="entry_id", read_only=True)
    lines = JournalLineSerializer(many=True, read_only=True)
    is_balanced = serializers.BooleanField(read_only=True)

    class Meta:
        model = JournalEntry
        fields = [
            "id", "transaction_reference", "date", "description", "status", "kind",
            "student_id", "source_kind", "source_id",
            "total_debit", "total_credit", "is_balanced",
            "voided_at", "voided_by", "void_reason",
            "created_by", "created_at", "updated_at",
            "lines",
        ]
        read_only_fields = fields


class DebtorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Debtor
        fields = [
            "student_id", "student_name", "account_code", "status",
            "total_owed", "total_paid", "current_balance", "overdue_amount",
            "original_outstanding", "notes", "created_at", "updated_at",
        ]
        read_only_fields = fields


# =============================================================================
# Input
# =============================================================================

class JournalLineInputSerializer(serializers.Serializer):
    account_code = serializers.CharField(max_length=64)
    debit = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, default=0)
    credit = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, default=0)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    metadata = serializers.DictField(required=False, default=dict)


class JournalEntryInputSerializer(serializers.Serializer):
    """Shape check for a dict-form entry draft. Produces an EntryDraft."""

    date = serializers.DateField()
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    transaction_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    kind = serializers.ChoiceField(choices=JournalEntry.Kind.choices, required=False, default=JournalEntry.Kind.MANUAL)
    student_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    source_kind = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    source_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    lines = JournalLineInputSerializer(many=True)

    def to_draft(self) -> EntryDraft:
        data = dict(self.validated_data)
        lines = [LineDraft(**dict(line)) for line in data.pop("lines")]
        return EntryDraft(lines=lines, **data)
