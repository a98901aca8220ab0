# audit/models.py
"""
Append-only logs written by ledger operations.

DeletionRecord holds a full snapshot of every entity removed by the
cascade deletion engine. AuditRecord summarises one completed operation.

Both are write-once: save() on an existing row and delete() raise.
"""

from django.db import models
from django.utils import timezone


class ImmutableRecord(models.Model):
    """Shared write-once behaviour."""

    entity_kind = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=100)
    actor = models.CharField(max_length=255)
    reason = models.TextField(blank=True, default="")
    operation_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    link_metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError(f"{self.__class__.__name__} records are immutable and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(f"{self.__class__.__name__} records are immutable and cannot be deleted.")


class DeletionRecord(ImmutableRecord):
    """
    Snapshot of one deleted entity.

    ``link_metadata`` states why the entity was removed: the target
    entry id and the link that matched (source, parentEntryId,
    originalEntryId, transaction_reference), or "target" for the
    entry the caller asked to delete.
    """

    snapshot = models.JSONField(default=dict)

    class Meta:
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["entity_kind", "entity_id"]),
        ]

    def __str__(self):
        return f"Deleted {self.entity_kind}#{self.entity_id} by {self.actor}"


class AuditRecord(ImmutableRecord):
    """Summary of a ledger operation (action + counts per category)."""

    action = models.CharField(max_length=64)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["action", "entity_id"]),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_kind}#{self.entity_id}"
