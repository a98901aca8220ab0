# ledger/types.py
"""
Input shapes for the Journal Entry Store.

EntryDraft/LineDraft are what callers hand to post_journal_entry. They
carry no validation of their own: ledger.policies is the single gate
that checks balance, line count and account resolution.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ledger.exceptions import InvalidLine, LedgerValidationError


def to_decimal(value) -> Decimal:
    """Convert input to a finite Decimal, treating None/"" as zero."""
    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidLine(f"Invalid decimal amount: {value!r}")
    if not result.is_finite():
        raise InvalidLine(f"Amount must be a finite number: {value!r}")
    return result


@dataclass
class LineDraft:
    account_code: str
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.debit = to_decimal(self.debit)
        self.credit = to_decimal(self.credit)

    @classmethod
    def from_dict(cls, data: dict) -> "LineDraft":
        return cls(
            account_code=str(data.get("account_code", "")),
            debit=data.get("debit", 0),
            credit=data.get("credit", 0),
            description=data.get("description", "") or "",
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class EntryDraft:
    date: date
    description: str = ""
    lines: List[LineDraft] = field(default_factory=list)
    transaction_reference: str = ""
    kind: str = "manual"
    student_id: str = ""
    source_kind: str = ""
    source_id: str = ""


def optional_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise LedgerValidationError(f"Invalid date: {value!r}. Expected YYYY-MM-DD.", value=str(value))


def money(value) -> Decimal:
    """Decimal rounded to cents."""
    try:
        return to_decimal(value).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise InvalidLine(f"Amount out of range: {value!r}")
