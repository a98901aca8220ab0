# ledger/cascade.py
"""
Cascade Deletion Engine.

Deletes a journal entry together with everything explicitly linked to
it. An entry (or line) is related to the target only through:

    - entry.source_kind == "journal_entry" and entry.source_id == target id
    - line.metadata["parentEntryId"] == target id
    - line.metadata["originalEntryId"] == target id
    - entry.transaction_reference == target id (exact)

Discovery is transitive: entries removed because of a link are
themselves searched for links. Sharing a transaction_reference with the
target is never a link on its own.

When only some lines of an entry carry a link, just those lines are
removed, and only if the remainder is still a valid entry. Otherwise
the whole operation is refused with WouldUnbalanceRemainder and nothing
is deleted.

Every removed entity gets a DeletionRecord snapshot before it goes. The
deletion runs in one transaction; the DeletionRecord/AuditRecord writes
run in savepoints and their failure only clears the result flags.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List

from django.db.models import Q

from audit.sinks import append_audit_record, append_deletion_record
from housing.models import Expense, Payment
from housing.serializers import ExpenseSerializer, PaymentSerializer
from ledger import directory
from ledger.authz import require
from ledger.commands import CommandResult, command_failed, load_entry, trim_lines
from ledger.debtors import ZERO, entry_debtor_deltas, sync_debtor
from ledger.exceptions import LedgerError
from ledger.models import JournalEntry, JournalLine, LedgerTransaction
from ledger.policies import assert_can_keep_remainder
from ledger.serializers import JournalEntrySerializer, JournalLineSerializer


logger = logging.getLogger(__name__)

SOURCE_MODELS = {
    "payment": (Payment, PaymentSerializer),
    "expense": (Expense, ExpenseSerializer),
}


@dataclass
class CascadeDeletionResult:
    target_entry_id: str
    deleted_entries: List[str] = field(default_factory=list)
    trimmed_lines: Dict[str, List[int]] = field(default_factory=dict)
    deleted_payments: List[str] = field(default_factory=list)
    deleted_expenses: List[str] = field(default_factory=list)
    deleted_transactions: List[str] = field(default_factory=list)
    deletion_records: int = 0
    deletion_log_complete: bool = True
    audit_logged: bool = False

    def counts(self) -> dict:
        return {
            "entries": len(self.deleted_entries),
            "trimmed_entries": len(self.trimmed_lines),
            "trimmed_lines": sum(len(v) for v in self.trimmed_lines.values()),
            "payments": len(self.deleted_payments),
            "expenses": len(self.deleted_expenses),
            "transactions": len(self.deleted_transactions),
        }

    def to_dict(self) -> dict:
        return {
            "target_entry_id": self.target_entry_id,
            "deleted_entries": list(self.deleted_entries),
            "trimmed_lines": {k: list(v) for k, v in self.trimmed_lines.items()},
            "deleted_payments": list(self.deleted_payments),
            "deleted_expenses": list(self.deleted_expenses),
            "deleted_transactions": list(self.deleted_transactions),
            "counts": self.counts(),
            "deletion_log_complete": self.deletion_log_complete,
            "audit_logged": self.audit_logged,
        }


@dataclass
class CascadePlan:
    """Entries to delete whole (with the link that matched) and lines to trim."""
    whole: "OrderedDict[int, tuple]" = field(default_factory=OrderedDict)
    partial: Dict[int, tuple] = field(default_factory=dict)
    debtor_deltas: Dict[str, list] = field(default_factory=dict)

    def undo_debtor_effect(self, entry: JournalEntry, lines) -> None:
        """Accumulate the negated debtor effect of removed lines."""
        if not entry.student_id or not entry.is_posted:
            return
        receivable = directory.student_receivable_code(entry.student_id)
        owed, paid = entry_debtor_deltas(entry, lines, receivable)
        bucket = self.debtor_deltas.setdefault(entry.student_id, [ZERO, ZERO])
        bucket[0] -= owed
        bucket[1] -= paid


# =============================================================================
# Discovery
# =============================================================================

def _linked_entries(ctx, entry_id: str):
    """Entries linked to ``entry_id`` at header level."""
    return ctx.query(JournalEntry).filter(
        Q(source_kind="journal_entry", source_id=entry_id) | Q(transaction_reference=entry_id)
    )


def _linked_lines(ctx, entry_id: str):
    return ctx.query(JournalLine).filter(
        Q(metadata__parentEntryId=entry_id) | Q(metadata__originalEntryId=entry_id)
    ).select_related("entry")


def _header_link(entry: JournalEntry, parent_id: str) -> str:
    if entry.source_kind == "journal_entry" and entry.source_id == parent_id:
        return "source"
    return "transaction_reference"


def discover(ctx, target: JournalEntry) -> CascadePlan:
    """Collect every entry/line explicitly linked to ``target``, transitively."""
    plan = CascadePlan()
    plan.whole[target.pk] = (target, {"link": "target"})
    queue = [target]

    def promote(entry, link):
        if entry.pk in plan.whole:
            return
        plan.partial.pop(entry.pk, None)
        plan.whole[entry.pk] = (entry, link)
        queue.append(entry)

    while queue:
        current = queue.pop(0)
        current_id = current.entry_id

        for entry in _linked_entries(ctx, current_id):
            promote(entry, {"link": _header_link(entry, current_id), "linkedTo": current_id})

        for line in _linked_lines(ctx, current_id):
            entry = line.entry
            if entry.pk in plan.whole:
                continue
            link_key = "parentEntryId" if line.metadata.get("parentEntryId") == current_id else "originalEntryId"
            _, line_nos, links = plan.partial.get(entry.pk, (entry, set(), []))
            line_nos.add(line.line_no)
            links.append({"link": link_key, "linkedTo": current_id, "line_no": line.line_no})
            line_count = entry.lines.count()
            if len(line_nos) >= line_count:
                promote(entry, {"link": link_key, "linkedTo": current_id})
            else:
                plan.partial[entry.pk] = (entry, line_nos, links)

    return plan


# =============================================================================
# Deletion
# =============================================================================

def _delete_entry(ctx, plan: CascadePlan, entry: JournalEntry, link: dict, reason: str, result: CascadeDeletionResult):
    snapshot = JournalEntrySerializer(entry).data
    record = append_deletion_record(
        ctx, "journal_entry", entry.entry_id, snapshot,
        reason=reason,
        link_metadata={"targetEntryId": result.target_entry_id, **link},
    )
    _count_record(result, record)
    plan.undo_debtor_effect(entry, entry.ordered_lines())
    entry.delete()
    result.deleted_entries.append(entry.entry_id)
    logger.info(
        "Journal entry deleted",
        extra=ctx.log_extra(entry_id=entry.entry_id, target_entry_id=result.target_entry_id, link=link.get("link")),
    )


def _trim_entry(ctx, plan: CascadePlan, entry: JournalEntry, line_nos, links, reason: str, result: CascadeDeletionResult):
    for line in entry.ordered_lines():
        if line.line_no not in line_nos:
            continue
        record = append_deletion_record(
            ctx, "journal_line", f"{entry.entry_id}:{line.line_no}",
            JournalLineSerializer(line).data,
            reason=reason,
            link_metadata={
                "targetEntryId": result.target_entry_id,
                "entryId": entry.entry_id,
                "links": [link for link in links if link["line_no"] == line.line_no],
            },
        )
        _count_record(result, record)
    removed = trim_lines(ctx, entry, line_nos, sync=False)
    plan.undo_debtor_effect(entry, removed)
    result.trimmed_lines[entry.entry_id] = sorted(line_nos)
    logger.info(
        "Journal lines removed by cascade",
        extra=ctx.log_extra(entry_id=entry.entry_id, line_nos=sorted(line_nos)),
    )


def _delete_source(ctx, source_kind: str, source_id, reason: str, link: dict, result: CascadeDeletionResult):
    model, serializer = SOURCE_MODELS[source_kind]
    record_obj = ctx.query(model).filter(pk=source_id).first() if str(source_id).isdigit() else None
    if record_obj is None:
        return
    _delete_record(ctx, source_kind, record_obj, serializer, reason, link, result)


def _delete_record(ctx, kind: str, record_obj, serializer, reason: str, link: dict, result: CascadeDeletionResult):
    record = append_deletion_record(
        ctx, kind, record_obj.pk, serializer(record_obj).data,
        reason=reason,
        link_metadata={"targetEntryId": result.target_entry_id, **link},
    )
    _count_record(result, record)
    pk = str(record_obj.pk)
    record_obj.delete()
    if kind == "payment":
        result.deleted_payments.append(pk)
    else:
        result.deleted_expenses.append(pk)
    logger.info(
        "Linked %s deleted", kind,
        extra=ctx.log_extra(record_id=pk, target_entry_id=result.target_entry_id, link=link.get("link")),
    )


def _apply_debtor_deltas(ctx, plan: CascadePlan, reason: str, result: CascadeDeletionResult):
    """One net debtor update per student for everything removed."""
    for student_id, (owed, paid) in plan.debtor_deltas.items():
        if owed == ZERO and paid == ZERO:
            continue
        sync_debtor(
            ctx,
            student_id,
            total_owed_delta=owed,
            total_paid_delta=paid,
            note=f"Cascade deletion of entry {result.target_entry_id}. {reason}".strip(),
        )


def _count_record(result: CascadeDeletionResult, record) -> None:
    if record is None:
        result.deletion_log_complete = False
    else:
        result.deletion_records += 1


def _delete_sources(ctx, target, plan, reason, delete_linked_payments, delete_linked_expenses, result):
    opted_in = {"payment": delete_linked_payments, "expense": delete_linked_expenses}

    # The target's own source record always goes with it.
    if target.source_kind in SOURCE_MODELS:
        _delete_source(ctx, target.source_kind, target.source_id, reason, {"link": "target_source"}, result)

    for entry, _ in list(plan.whole.values())[1:]:
        if entry.source_kind in SOURCE_MODELS and opted_in[entry.source_kind]:
            _delete_source(
                ctx, entry.source_kind, entry.source_id, reason,
                {"link": "related_source", "entryId": entry.entry_id}, result,
            )

    if not target.transaction_reference:
        return
    for kind, (model, serializer) in SOURCE_MODELS.items():
        if not opted_in[kind]:
            continue
        for record_obj in ctx.query(model).filter(reference=target.transaction_reference):
            _delete_record(
                ctx, kind, record_obj, serializer, reason,
                {"link": "shared_reference", "reference": target.transaction_reference}, result,
            )


def _delete_orphan_transactions(ctx, references, reason: str, result: CascadeDeletionResult):
    for reference in sorted(references):
        parent = ctx.query(LedgerTransaction).filter(reference=reference).first()
        if parent is None:
            continue
        live = ctx.query(JournalEntry).filter(
            transaction_reference=reference, status=JournalEntry.Status.POSTED
        ).exists()
        if live:
            continue
        record = append_deletion_record(
            ctx, "transaction", reference,
            {"reference": parent.reference, "date": parent.date.isoformat(), "description": parent.description},
            reason=reason,
            link_metadata={"targetEntryId": result.target_entry_id, "link": "no_remaining_entries"},
        )
        _count_record(result, record)
        parent.delete()
        result.deleted_transactions.append(reference)
        logger.info("Transaction parent deleted", extra=ctx.log_extra(reference=reference))


def delete_with_cascade(
    ctx,
    entry_id,
    reason: str = "",
    delete_linked_payments: bool = False,
    delete_linked_expenses: bool = False,
) -> CommandResult:
    """
    Delete a journal entry and everything explicitly linked to it.

    Returns:
        CommandResult with a CascadeDeletionResult, or a failure
        (EntryNotFound, WouldUnbalanceRemainder) with nothing deleted
    """
    require(ctx.actor, "ledger.delete")
    try:
        with ctx.atomic():
            target = load_entry(ctx, entry_id, for_update=True)
            result = CascadeDeletionResult(target_entry_id=target.entry_id)
            plan = discover(ctx, target)

            # Refuse before anything is deleted.
            for entry, line_nos, _ in plan.partial.values():
                remaining = [line for line in entry.ordered_lines() if line.line_no not in line_nos]
                assert_can_keep_remainder(entry, remaining)

            references = {
                entry.transaction_reference
                for entry, _ in plan.whole.values()
                if entry.transaction_reference
            }

            _delete_sources(ctx, target, plan, reason, delete_linked_payments, delete_linked_expenses, result)
            for entry, line_nos, links in plan.partial.values():
                _trim_entry(ctx, plan, entry, line_nos, links, reason, result)
            for entry, link in plan.whole.values():
                _delete_entry(ctx, plan, entry, link, reason, result)
            _apply_debtor_deltas(ctx, plan, reason, result)
            _delete_orphan_transactions(ctx, references, reason, result)

            audit = append_audit_record(
                ctx,
                action="journal_entry.cascade_delete",
                entity_kind="journal_entry",
                entity_id=target.entry_id,
                details=result.counts(),
                reason=reason,
                link_metadata={
                    "deleteLinkedPayments": delete_linked_payments,
                    "deleteLinkedExpenses": delete_linked_expenses,
                },
            )
            result.audit_logged = audit is not None
    except LedgerError as exc:
        return command_failed(ctx, "Cascade delete", exc, entry_id=str(entry_id))

    warnings = []
    if not result.deletion_log_complete:
        warnings.append("One or more deletion records could not be written.")
    if not result.audit_logged:
        warnings.append("Audit record could not be written.")

    logger.info(
        "Cascade deletion completed",
        extra=ctx.log_extra(entry_id=result.target_entry_id, **result.counts()),
    )
    return CommandResult.ok(result, warnings=warnings)
