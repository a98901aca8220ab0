# ledger/directory.py
"""
Account Directory: account code -> {name, type}.

The Journal Entry Store resolves every line's account code here at
write time. ``ensure`` is create-if-absent and is used where the ledger
legitimately introduces accounts (student receivables, the account a
negotiated discount is booked against).
"""
import logging
from typing import Dict, Iterable

from django.conf import settings

from ledger.exceptions import UnknownAccount, InvalidPaymentType
from ledger.models import Account


logger = logging.getLogger(__name__)


RECEIVABLE_CONTROL_CODE = "1100"
DEPOSIT_LIABILITY_CODE = "2020"
ADVANCE_PAYMENT_LIABILITY_CODE = "2200"
FORFEITED_INCOME_CODE = "4003"

PAYMENT_TYPE_ACCOUNTS = {
    "rent": "4001",
    "admin_fee": "4002",
    "deposit": DEPOSIT_LIABILITY_CODE,
    "utilities": "4004",
    "other": "4005",
}


def chart_of_accounts() -> Dict[str, tuple]:
    return dict(getattr(settings, "LEDGER_CHART_OF_ACCOUNTS", {}))


def resolve(ctx, code: str) -> Account:
    """Return the active account for ``code`` or raise UnknownAccount."""
    account = ctx.query(Account).filter(code=code, is_active=True).first()
    if account is None:
        raise UnknownAccount(f"Account {code} not found.", account_code=code)
    return account


def resolve_many(ctx, codes: Iterable[str]) -> Dict[str, Account]:
    """Resolve several codes at once; every missing code is reported."""
    wanted = set(codes)
    accounts = {
        acc.code: acc
        for acc in ctx.query(Account).filter(code__in=wanted, is_active=True)
    }
    missing = sorted(wanted - set(accounts))
    if missing:
        raise UnknownAccount(
            f"Unknown account code(s): {', '.join(missing)}",
            account_codes=missing,
        )
    return accounts


def ensure(ctx, code: str, name: str, account_type: str) -> Account:
    """Create the account if absent. Existing accounts are returned unchanged."""
    account, created = ctx.query(Account).get_or_create(
        code=code,
        defaults={"name": name, "account_type": account_type},
    )
    if created:
        logger.info(
            "Account created",
            extra=ctx.log_extra(account_code=code, account_type=account_type),
        )
    return account


def ensure_chart_account(ctx, code: str) -> Account:
    """Ensure one of the configured chart-of-accounts codes exists."""
    name, account_type = chart_of_accounts()[code]
    return ensure(ctx, code, name, account_type)


def student_receivable_code(student_id: str) -> str:
    return f"{RECEIVABLE_CONTROL_CODE}-{student_id}"


def ensure_student_receivable(ctx, student_id: str, student_name: str = "") -> Account:
    label = student_name or student_id
    return ensure(
        ctx,
        student_receivable_code(student_id),
        f"Accounts Receivable - {label}",
        Account.AccountType.ASSET,
    )


def account_for_payment_type(ctx, payment_type: str) -> Account:
    """Income/liability account a payment type is booked against."""
    code = PAYMENT_TYPE_ACCOUNTS.get(payment_type)
    if code is None:
        raise InvalidPaymentType(
            f"Unknown payment type '{payment_type}'. "
            f"Expected one of: {', '.join(sorted(PAYMENT_TYPE_ACCOUNTS))}",
            payment_type=payment_type,
        )
    return ensure_chart_account(ctx, code)


def seed_chart(ctx) -> tuple:
    """Create every configured account that does not exist yet."""
    created = 0
    existing = 0
    for code, (name, account_type) in sorted(chart_of_accounts().items()):
        _, was_created = ctx.query(Account).get_or_create(
            code=code,
            defaults={"name": name, "account_type": account_type},
        )
        if was_created:
            created += 1
        else:
            existing += 1
    return created, existing
