# audit/sinks.py
"""
Writers for the append-only logs.

Each append runs in its own savepoint inside the caller's transaction.
If the write fails, the savepoint is rolled back, a warning is logged
and None is returned; the surrounding operation carries on and reports
the gap through its result flags.
"""
import logging

from django.db import DatabaseError

from audit.models import AuditRecord, DeletionRecord


logger = logging.getLogger(__name__)


def _append(ctx, model, **fields):
    try:
        with ctx.atomic():
            record = model(
                actor=ctx.actor.label,
                operation_id=ctx.operation_id,
                **fields,
            )
            record.save(using=ctx.using)
            return record
    except (DatabaseError, ValueError, TypeError) as exc:
        logger.warning(
            "%s write failed",
            model.__name__,
            extra=ctx.log_extra(
                entity_kind=fields.get("entity_kind"),
                entity_id=fields.get("entity_id"),
                error=str(exc),
            ),
        )
        return None


def append_deletion_record(
    ctx,
    entity_kind: str,
    entity_id,
    snapshot: dict,
    reason: str = "",
    link_metadata: dict = None,
):
    """Record the full snapshot of an entity about to be deleted."""
    return _append(
        ctx,
        DeletionRecord,
        entity_kind=entity_kind,
        entity_id=str(entity_id),
        snapshot=snapshot,
        reason=reason,
        link_metadata=link_metadata or {},
    )


def append_audit_record(
    ctx,
    action: str,
    entity_kind: str,
    entity_id,
    details: dict = None,
    reason: str = "",
    link_metadata: dict = None,
):
    return _append(
        ctx,
        AuditRecord,
        action=action,
        entity_kind=entity_kind,
        entity_id=str(entity_id),
        details=details or {},
        reason=reason,
        link_metadata=link_metadata or {},
    )
