# ledger/policies.py
"""
Business policy functions for ledger operations.

Policies answer: "Is this allowed given the current state?"
They do NOT perform the action; commands do.

validate_entry_lines is THE validation gate for journal entries. Every path
that writes lines (post, line replacement, line removal, reversal,
discount, forfeiture, cascade trimming) goes through it, so no caller
can persist an entry that violates:

    I1  |total debit - total credit| < LEDGER_BALANCE_TOLERANCE
    I2  at least two lines
    I3  every account code resolves in the Account Directory

Usage:
    # Option 1: Check and get boolean + reason
    allowed, reason = can_reverse_entry(entry)
    if not allowed:
        raise EntryNotPosted(reason)

    # Option 2: Assert and raise the typed ledger error
    assert_can_reverse_entry(entry)
"""

from decimal import Decimal
from typing import Dict, Sequence, Tuple

from ledger import directory
from ledger.exceptions import (
    EntryNotPosted,
    InvalidLine,
    TooFewLines,
    UnbalancedEntry,
    WouldUnbalanceRemainder,
)
from ledger.models import Account, JournalEntry, MONEY_Q, balance_tolerance
from ledger.types import to_decimal


MIN_LINES = 2


# =============================================================================
# Entry validation gate
# =============================================================================

def line_totals(lines: Sequence) -> Tuple[Decimal, Decimal]:
    total_debit = sum((Decimal(line.debit) for line in lines), Decimal("0.00"))
    total_credit = sum((Decimal(line.credit) for line in lines), Decimal("0.00"))
    return total_debit.quantize(MONEY_Q), total_credit.quantize(MONEY_Q)


def validate_line_amounts(lines: Sequence) -> None:
    """Per-line rules: non-negative, one-sided, non-zero, two decimal places."""
    for index, line in enumerate(lines, start=1):
        if not line.account_code:
            raise InvalidLine(f"Line {index}: account code is required.", line_no=index)
        debit = to_decimal(line.debit)
        credit = to_decimal(line.credit)
        if debit < 0 or credit < 0:
            raise InvalidLine(f"Line {index}: debit/credit cannot be negative.", line_no=index)
        if debit > 0 and credit > 0:
            raise InvalidLine(f"Line {index}: a line cannot have both debit and credit.", line_no=index)
        if debit == 0 and credit == 0:
            raise InvalidLine(f"Line {index}: a line cannot have both debit and credit = 0.", line_no=index)
        if debit != debit.quantize(MONEY_Q) or credit != credit.quantize(MONEY_Q):
            raise InvalidLine(f"Line {index}: amounts are limited to two decimal places.", line_no=index)


def check_balance(lines: Sequence) -> Tuple[bool, str]:
    """I1 + I2 without touching the database."""
    if len(lines) < MIN_LINES:
        return False, f"Journal entry must have at least {MIN_LINES} lines."
    total_debit, total_credit = line_totals(lines)
    if abs(total_debit - total_credit) >= balance_tolerance():
        return False, f"Entry is not balanced. Debit={total_debit} Credit={total_credit}"
    return True, ""


def validate_entry_lines(ctx, lines: Sequence) -> Dict[str, Account]:
    """
    Validate a full set of lines for one entry (I1, I2, I3).

    Raises:
        TooFewLines, InvalidLine, UnbalancedEntry, UnknownAccount

    Returns:
        Mapping of account code -> Account for the lines
    """
    if len(lines) < MIN_LINES:
        raise TooFewLines(
            f"Journal entry must have at least {MIN_LINES} lines.",
            line_count=len(lines),
        )

    validate_line_amounts(lines)

    total_debit, total_credit = line_totals(lines)
    if abs(total_debit - total_credit) >= balance_tolerance():
        raise UnbalancedEntry(
            f"Entry is not balanced. Debit={total_debit} Credit={total_credit}",
            total_debit=str(total_debit),
            total_credit=str(total_credit),
        )

    return directory.resolve_many(ctx, [line.account_code for line in lines])


# =============================================================================
# Entry workflow policies
# =============================================================================

def can_reverse_entry(entry: JournalEntry) -> Tuple[bool, str]:
    """
    Rules:
    - Must be POSTED (voided entries have no ledger effect to undo)
    """
    if entry.status != JournalEntry.Status.POSTED:
        return False, f"Cannot reverse entry in {entry.status} status."
    return True, ""


def can_edit_entry(entry: JournalEntry) -> Tuple[bool, str]:
    """Line edits and voiding are only possible on POSTED entries."""
    if entry.status != JournalEntry.Status.POSTED:
        return False, f"Cannot modify entry in {entry.status} status."
    return True, ""


def can_keep_remainder(remaining_lines: Sequence) -> Tuple[bool, str]:
    """
    Check that the lines left after a removal still form a valid entry.

    A removal that would drop a live entry below two lines, or leave it
    unbalanced, is refused; the whole entry must be voided or deleted
    instead.
    """
    return check_balance(remaining_lines)


# =============================================================================
# Assertion Helpers (raise on failure)
# =============================================================================

def assert_can_reverse_entry(entry: JournalEntry) -> None:
    allowed, reason = can_reverse_entry(entry)
    if not allowed:
        raise EntryNotPosted(reason, entry_id=entry.entry_id)


def assert_can_edit_entry(entry: JournalEntry) -> None:
    allowed, reason = can_edit_entry(entry)
    if not allowed:
        raise EntryNotPosted(reason, entry_id=entry.entry_id)


def assert_can_keep_remainder(entry: JournalEntry, remaining_lines: Sequence) -> None:
    allowed, reason = can_keep_remainder(remaining_lines)
    if not allowed:
        raise WouldUnbalanceRemainder(
            f"Entry {entry.entry_id}: {reason}",
            entry_id=entry.entry_id,
            remaining_lines=len(remaining_lines),
        )
