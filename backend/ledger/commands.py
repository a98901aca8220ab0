# ledger/commands.py
"""
Command layer for ledger operations.

Commands are the single point where journal entries are written.
Higher-level engines (adjustments, cascade, forfeiture, postings) call
the helpers here instead of touching JournalEntry/JournalLine directly.

Pattern:
1. Validate permissions (require)
2. Apply business policies (validate_entry_lines, can_*)
3. Perform the operation inside ctx.atomic()
4. Synchronise the debtor in the same transaction
5. Return CommandResult

Ledger errors are raised inside the atomic block, so nothing written
so far survives, then converted into CommandResult.fail(...).
PermissionDenied is not converted.
"""
import logging
import uuid
from typing import Iterable, List, Optional

from django.utils import timezone

from ledger import directory
from ledger.authz import require
from ledger.debtors import ZERO, entry_debtor_deltas, sync_debtor
from ledger.exceptions import (
    AlreadyReversed,
    EntryNotFound,
    InvalidLine,
    LedgerError,
    LedgerValidationError,
)
from ledger.models import JournalEntry, JournalLine, LedgerTransaction
from ledger.policies import (
    assert_can_edit_entry,
    assert_can_keep_remainder,
    assert_can_reverse_entry,
    line_totals,
    validate_entry_lines,
)
from ledger.serializers import JournalEntryInputSerializer
from ledger.types import EntryDraft, LineDraft, optional_date


logger = logging.getLogger(__name__)


class CommandResult:
    def __init__(
        self,
        success: bool,
        data=None,
        error: str = None,
        error_code: str = None,
        exception: Exception = None,
        warnings=None,
    ):
        self.success = success
        self.data = data
        self.error = error
        self.error_code = error_code
        self.exception = exception
        self.warnings = list(warnings or [])

    @classmethod
    def ok(cls, data=None, warnings=None):
        return cls(success=True, data=data, warnings=warnings)

    @classmethod
    def fail(cls, error):
        if isinstance(error, LedgerError):
            return cls(success=False, error=error.message, error_code=error.code, exception=error)
        return cls(success=False, error=str(error))

    def __repr__(self):
        if self.success:
            return f"<CommandResult ok data={self.data!r}>"
        return f"<CommandResult fail {self.error_code}: {self.error}>"


def command_failed(ctx, action: str, exc: LedgerError, **fields) -> CommandResult:
    logger.warning(
        "%s failed: %s",
        action,
        exc.message,
        extra=ctx.log_extra(error_code=exc.code, **fields),
    )
    return CommandResult.fail(exc)


# =============================================================================
# Lookups and low-level writers (run inside the caller's transaction)
# =============================================================================

def load_entry(ctx, entry_id, for_update: bool = False) -> JournalEntry:
    """Exact id lookup. No fallback scan by reference or description."""
    try:
        public_id = uuid.UUID(str(entry_id))
    except (TypeError, ValueError):
        raise EntryNotFound(f"Journal entry {entry_id} not found.", entry_id=str(entry_id))

    queryset = ctx.query(JournalEntry)
    if for_update:
        queryset = queryset.select_for_update()
    entry = queryset.filter(public_id=public_id).first()
    if entry is None:
        raise EntryNotFound(f"Journal entry {entry_id} not found.", entry_id=str(entry_id))
    return entry


def _as_line_drafts(lines: Iterable) -> List[LineDraft]:
    drafts = []
    for line in lines:
        if isinstance(line, LineDraft):
            drafts.append(line)
        elif isinstance(line, dict):
            drafts.append(LineDraft.from_dict(line))
        else:
            raise InvalidLine(f"Unsupported line value: {line!r}")
    return drafts


def _build_lines(entry: JournalEntry, drafts: List[LineDraft], accounts: dict) -> List[JournalLine]:
    rows = []
    for line_no, draft in enumerate(drafts, start=1):
        account = accounts[draft.account_code]
        rows.append(JournalLine(
            entry=entry,
            line_no=line_no,
            account=account,
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type,
            description=draft.description,
            debit=draft.debit,
            credit=draft.credit,
            metadata=dict(draft.metadata),
        ))
    return rows


def _ensure_transaction_parent(ctx, entry: JournalEntry) -> None:
    if not entry.transaction_reference:
        return
    ctx.query(LedgerTransaction).get_or_create(
        reference=entry.transaction_reference,
        defaults={"date": entry.date, "description": entry.description},
    )


def write_entry(ctx, draft: EntryDraft) -> JournalEntry:
    """
    Validate and persist one entry.

    Every journal entry in the system is created here.
    """
    drafts = _as_line_drafts(draft.lines)
    accounts = validate_entry_lines(ctx, drafts)
    total_debit, total_credit = line_totals(drafts)

    entry = JournalEntry(
        transaction_reference=draft.transaction_reference or "",
        date=draft.date or ctx.today,
        description=draft.description or "",
        kind=draft.kind or JournalEntry.Kind.MANUAL,
        student_id=draft.student_id or "",
        source_kind=draft.source_kind or "",
        source_id=str(draft.source_id or ""),
        total_debit=total_debit,
        total_credit=total_credit,
        created_by=ctx.actor.actor_id,
    )
    entry.save(using=ctx.using)
    ctx.query(JournalLine).bulk_create(_build_lines(entry, drafts, accounts))
    _ensure_transaction_parent(ctx, entry)

    logger.info(
        "Journal entry posted",
        extra=ctx.log_extra(
            entry_id=entry.entry_id,
            kind=entry.kind,
            student_id=entry.student_id,
            total=str(total_debit),
        ),
    )
    return entry


def sync_entry_debtor(ctx, entry: JournalEntry, lines, sign: int = 1, note: str = ""):
    """Apply (or with sign=-1, undo) the debtor effect of ``lines``."""
    if not entry.student_id:
        return None
    receivable = directory.student_receivable_code(entry.student_id)
    owed_delta, paid_delta = entry_debtor_deltas(entry, lines, receivable)
    if owed_delta == ZERO and paid_delta == ZERO:
        return None
    return sync_debtor(
        ctx,
        entry.student_id,
        total_owed_delta=owed_delta * sign,
        total_paid_delta=paid_delta * sign,
        note=note,
    )


def find_reversal(ctx, entry: JournalEntry) -> Optional[JournalEntry]:
    """The entry that reverses ``entry``, located by explicit line metadata."""
    line = (
        ctx.query(JournalLine)
        .filter(metadata__originalEntryId=entry.entry_id, metadata__isReversal=True)
        .select_related("entry")
        .first()
    )
    return line.entry if line else None


def reverse_entry(ctx, original: JournalEntry, reason: str = "", effective_date=None) -> JournalEntry:
    """
    Post the mirror image of ``original`` and undo its debtor effect.

    The original entry is never modified.
    """
    assert_can_reverse_entry(original)
    if find_reversal(ctx, original) is not None:
        raise AlreadyReversed(
            f"Journal entry {original.entry_id} was already reversed.",
            entry_id=original.entry_id,
        )

    original_lines = original.ordered_lines()
    mirrored = []
    for line in original_lines:
        metadata = {"originalEntryId": original.entry_id, "isReversal": True}
        for key in ("studentId", "isForfeiture"):
            if line.metadata.get(key):
                metadata[key] = line.metadata[key]
        mirrored.append(LineDraft(
            account_code=line.account_code,
            debit=line.credit,
            credit=line.debit,
            description=f"Reversal: {line.description}".strip(),
            metadata=metadata,
        ))

    description = f"Reversal of {original.description or original.entry_id}"
    if reason:
        description = f"{description}: {reason}"

    reversal = write_entry(ctx, EntryDraft(
        date=optional_date(effective_date) or original.date,
        description=description[:255],
        lines=mirrored,
        transaction_reference=original.transaction_reference,
        kind=JournalEntry.Kind.REVERSAL,
        student_id=original.student_id,
        source_kind="journal_entry",
        source_id=original.entry_id,
    ))
    sync_entry_debtor(
        ctx, original, original_lines, sign=-1,
        note=f"Reversed entry {original.entry_id}. {reason}".strip(),
    )
    return reversal


# =============================================================================
# Journal Entry Store
# =============================================================================

def _coerce_draft(draft) -> EntryDraft:
    if isinstance(draft, EntryDraft):
        return draft
    serializer = JournalEntryInputSerializer(data=draft)
    if not serializer.is_valid():
        raise LedgerValidationError(f"Invalid entry: {serializer.errors}", errors=serializer.errors)
    return serializer.to_draft()


def post_journal_entry(ctx, draft) -> CommandResult:
    """
    Post a balanced journal entry.

    Args:
        ctx: Operation context
        draft: EntryDraft, or a dict of the same shape

    Returns:
        CommandResult with the JournalEntry, or a failure carrying
        UnbalancedEntry / TooFewLines / UnknownAccount / InvalidLine.
        Nothing is written on failure.
    """
    require(ctx.actor, "ledger.post")
    try:
        with ctx.atomic():
            entry = write_entry(ctx, _coerce_draft(draft))
    except LedgerError as exc:
        return command_failed(ctx, "Post journal entry", exc)
    return CommandResult.ok(entry)


def get_journal_entry(ctx, entry_id) -> JournalEntry:
    """Exact id lookup; raises EntryNotFound."""
    return load_entry(ctx, entry_id)


def replace_journal_lines(ctx, entry_id, lines) -> CommandResult:
    """
    Replace every line of a posted entry.

    The new set is re-validated (balance, line count, accounts) and the
    cached totals are recomputed. The debtor moves by the difference.
    """
    require(ctx.actor, "ledger.edit")
    try:
        with ctx.atomic():
            entry = load_entry(ctx, entry_id, for_update=True)
            assert_can_edit_entry(entry)

            drafts = _as_line_drafts(lines)
            accounts = validate_entry_lines(ctx, drafts)
            old_lines = entry.ordered_lines()

            entry.lines.all().delete()
            ctx.query(JournalLine).bulk_create(_build_lines(entry, drafts, accounts))
            entry.total_debit, entry.total_credit = line_totals(drafts)
            entry.save(using=ctx.using, update_fields=["total_debit", "total_credit", "updated_at"])

            sync_entry_debtor(ctx, entry, old_lines, sign=-1)
            sync_entry_debtor(ctx, entry, drafts, note=f"Lines replaced on entry {entry.entry_id}")
    except LedgerError as exc:
        return command_failed(ctx, "Replace journal lines", exc, entry_id=str(entry_id))

    logger.info("Journal lines replaced", extra=ctx.log_extra(entry_id=entry.entry_id, line_count=len(drafts)))
    return CommandResult.ok(entry)


def trim_lines(ctx, entry: JournalEntry, line_nos, sync: bool = True) -> List[JournalLine]:
    """
    Delete the given lines from ``entry`` if the remainder stays valid.

    Raises WouldUnbalanceRemainder (nothing deleted) when the remaining
    lines would be unbalanced or fewer than two.
    """
    wanted = set(line_nos)
    lines = entry.ordered_lines()
    removed = [line for line in lines if line.line_no in wanted]
    missing = wanted - {line.line_no for line in removed}
    if missing:
        raise InvalidLine(
            f"Entry {entry.entry_id} has no line(s) {sorted(missing)}.",
            entry_id=entry.entry_id,
        )
    remaining = [line for line in lines if line.line_no not in wanted]
    assert_can_keep_remainder(entry, remaining)

    ctx.query(JournalLine).filter(pk__in=[line.pk for line in removed]).delete()
    entry.total_debit, entry.total_credit = line_totals(remaining)
    entry.save(using=ctx.using, update_fields=["total_debit", "total_credit", "updated_at"])
    if sync and entry.is_posted:
        sync_entry_debtor(ctx, entry, removed, sign=-1)
    return removed


def remove_journal_lines(ctx, entry_id, line_nos) -> CommandResult:
    """
    Remove lines from a posted entry.

    Refused with WouldUnbalanceRemainder if the entry would be left
    unbalanced or with fewer than two lines; void the entry instead.
    """
    require(ctx.actor, "ledger.edit")
    try:
        with ctx.atomic():
            entry = load_entry(ctx, entry_id, for_update=True)
            assert_can_edit_entry(entry)
            removed = trim_lines(ctx, entry, line_nos)
    except LedgerError as exc:
        return command_failed(ctx, "Remove journal lines", exc, entry_id=str(entry_id))

    logger.info(
        "Journal lines removed",
        extra=ctx.log_extra(entry_id=entry.entry_id, line_nos=[line.line_no for line in removed]),
    )
    return CommandResult.ok(entry)


def void_journal_entry(ctx, entry_id, reason: str = "") -> CommandResult:
    """POSTED -> VOIDED. The debtor effect of the entry is undone."""
    require(ctx.actor, "ledger.edit")
    try:
        with ctx.atomic():
            entry = load_entry(ctx, entry_id, for_update=True)
            assert_can_edit_entry(entry)

            entry.status = JournalEntry.Status.VOIDED
            entry.voided_at = timezone.now()
            entry.voided_by = ctx.actor.actor_id
            entry.void_reason = reason[:255]
            entry.save(using=ctx.using)
            sync_entry_debtor(
                ctx, entry, entry.ordered_lines(), sign=-1,
                note=f"Voided entry {entry.entry_id}. {reason}".strip(),
            )
    except LedgerError as exc:
        return command_failed(ctx, "Void journal entry", exc, entry_id=str(entry_id))

    logger.info("Journal entry voided", extra=ctx.log_extra(entry_id=entry.entry_id, reason=reason))
    return CommandResult.ok(entry)


# =============================================================================
# Reversal Engine
# =============================================================================

def reverse_journal_entry(ctx, original_entry_id, reason: str = "", effective_date=None) -> CommandResult:
    """
    Reverse a posted journal entry.

    Creates a new entry with every line mirrored (debit <-> credit) in the
    original order, tagged with originalEntryId/isReversal. The reversal
    is dated to the original entry unless effective_date is given.

    Returns:
        CommandResult with {"original": entry, "reversal": reversal_entry}
        or a failure (EntryNotFound, AlreadyReversed, EntryNotPosted)
    """
    require(ctx.actor, "ledger.reverse")
    try:
        with ctx.atomic():
            original = load_entry(ctx, original_entry_id, for_update=True)
            reversal = reverse_entry(ctx, original, reason, effective_date)
    except LedgerError as exc:
        return command_failed(ctx, "Reverse journal entry", exc, entry_id=str(original_entry_id))

    logger.info(
        "Journal entry reversed",
        extra=ctx.log_extra(entry_id=original.entry_id, reversal_id=reversal.entry_id),
    )
    return CommandResult.ok({"original": original, "reversal": reversal})
