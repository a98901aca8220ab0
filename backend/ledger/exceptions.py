# ledger/exceptions.py
"""
Domain errors for ledger operations.

Four families, matching how a caller is expected to react:

- LedgerValidationError: the input was wrong. Raised before any write;
  retry with corrected input.
- LedgerNotFoundError: the target (or a linked record) does not exist.
- LedgerConflictError: the request collides with current state
  (already reversed, deposit already paid, discount not below original).
  Nothing was written.
- LedgerIntegrityError: the operation would break a live entry
  (unbalanced remainder, fewer than two lines). Refused entirely.

Commands raise these inside their transaction so the database rolls
back, then convert them into CommandResult.fail(...) for the caller.
"""


class LedgerError(Exception):
    """Base exception for all ledger failures."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.details = details

    @property
    def message(self) -> str:
        return str(self)


# =============================================================================
# Validation
# =============================================================================

class LedgerValidationError(LedgerError):
    code = "VALIDATION_ERROR"


class UnbalancedEntry(LedgerValidationError):
    """Total debits do not equal total credits."""
    code = "UNBALANCED"


class TooFewLines(LedgerValidationError):
    """A journal entry needs at least two lines."""
    code = "TOO_FEW_LINES"


class UnknownAccount(LedgerValidationError):
    """Account code is not in the chart of accounts."""
    code = "UNKNOWN_ACCOUNT"


class InvalidLine(LedgerValidationError):
    """A line has a negative, zero or two-sided amount."""
    code = "INVALID_LINE"


class InvalidPaymentType(LedgerValidationError):
    """Payment type has no account mapping."""
    code = "INVALID_PAYMENT_TYPE"


# =============================================================================
# Not found
# =============================================================================

class LedgerNotFoundError(LedgerError):
    code = "NOT_FOUND"


class EntryNotFound(LedgerNotFoundError):
    """Journal entry not found."""
    code = "NOT_FOUND"


class AccrualNotFound(LedgerNotFoundError):
    """Linked accrual entry not found."""
    code = "ACCRUAL_NOT_FOUND"


class DebtorNotFound(LedgerNotFoundError):
    """No debtor record for this student."""
    code = "DEBTOR_NOT_FOUND"


# =============================================================================
# Conflict
# =============================================================================

class LedgerConflictError(LedgerError):
    code = "CONFLICT"


class AlreadyReversed(LedgerConflictError):
    """This entry was already reversed."""
    code = "ALREADY_REVERSED"


class EntryNotPosted(LedgerConflictError):
    """Only posted entries can be changed."""
    code = "NOT_POSTED"


class DepositAlreadyPaid(LedgerConflictError):
    """The security deposit has already been paid or reversed."""
    code = "DEPOSIT_ALREADY_PAID"


class InvalidAmounts(LedgerConflictError):
    """Negotiated amount must be positive and below the original amount."""
    code = "INVALID_AMOUNTS"


# =============================================================================
# Integrity
# =============================================================================

class LedgerIntegrityError(LedgerError):
    code = "INTEGRITY_ERROR"


class WouldUnbalanceRemainder(LedgerIntegrityError):
    """Removing these lines would leave a live entry unbalanced or under two lines."""
    code = "WOULD_UNBALANCE_REMAINDER"
