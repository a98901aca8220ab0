# ledger/api.py
"""
Programmatic entry points for the ledger.

Usage:
    from ledger import api
    from ledger.authz import ActorContext
    from ledger.context import OperationContext

    ctx = OperationContext.begin(ActorContext(actor_id="u-17", perms=frozenset({"ledger.post"})))
    result = api.post(ctx, {"date": "2025-03-01", "lines": [...]})
    if not result.success:
        print(result.error_code, result.error)
"""

from ledger.adjustments import apply_discount
from ledger.cascade import CascadeDeletionResult, delete_with_cascade
from ledger.commands import (
    CommandResult,
    get_journal_entry,
    post_journal_entry as post,
    remove_journal_lines,
    replace_journal_lines,
    reverse_journal_entry as reverse,
    void_journal_entry,
)
from ledger.debtors import recompute, sync_debtor
from ledger.deposits import StudentLedgerStatus, get_status, reverse_unpaid_deposit
from ledger.forfeiture import ForfeitureResult, forfeit_student
from ledger.postings import record_expense, record_lease_start, record_monthly_accrual, record_payment


__all__ = [
    "CommandResult",
    "CascadeDeletionResult",
    "ForfeitureResult",
    "StudentLedgerStatus",
    "post",
    "reverse",
    "delete_with_cascade",
    "apply_discount",
    "forfeit_student",
    "get_status",
    "get_journal_entry",
    "replace_journal_lines",
    "remove_journal_lines",
    "void_journal_entry",
    "reverse_unpaid_deposit",
    "record_lease_start",
    "record_monthly_accrual",
    "record_payment",
    "record_expense",
    "recompute",
    "sync_debtor",
]
