# ledger/authz.py
"""
Authorization utilities for ledger commands.

Provides:
- ActorContext: Immutable description of who performs an operation
- require: Check a permission code and raise if not granted

Permission codes:
    ledger.post      post entries and record payments/accruals/expenses
    ledger.edit      replace/remove lines, void entries
    ledger.reverse   reverse entries
    ledger.adjust    apply negotiated discounts, reverse unpaid deposits
    ledger.delete    cascade deletion
    ledger.forfeit   student forfeiture
"""

from dataclasses import dataclass, field
from typing import FrozenSet

from django.core.exceptions import PermissionDenied


ALL_PERMISSIONS = "*"


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor.

    Attributes:
        actor_id: Stable identifier recorded in audit and deletion logs
        email: Optional contact recorded alongside the id
        perms: Explicit permission codes ("*" grants everything)
    """
    actor_id: str
    email: str = ""
    perms: FrozenSet[str] = field(default_factory=frozenset)

    def has(self, code: str) -> bool:
        return ALL_PERMISSIONS in self.perms or code in self.perms

    @property
    def label(self) -> str:
        """Human-readable actor reference for log rows."""
        if self.email:
            return f"{self.actor_id} <{self.email}>"
        return self.actor_id

    @classmethod
    def system(cls, actor_id: str = "system") -> "ActorContext":
        """Actor for internal processes (cron, seeding)."""
        return cls(actor_id=actor_id, perms=frozenset({ALL_PERMISSIONS}))


def require(actor: ActorContext, code: str) -> None:
    """Raise PermissionDenied unless the actor holds ``code``."""
    if not actor.has(code):
        raise PermissionDenied(f"Missing permission: {code}")
