# ledger/context.py
"""
Operation context threaded through every ledger call.

One logical operation (post, reverse, cascade delete, discount,
forfeiture) gets one OperationContext. It carries who is acting, which
database alias the operation runs against, and an operation id that is
stamped on log lines and on audit/deletion records. There is no
module-level "current session": nested helpers receive the same ctx
argument, so they all join the same transaction.

Usage:
    ctx = OperationContext.begin(actor)
    result = reverse_journal_entry(ctx, entry_id, reason="Duplicate")
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, date

from django.db import transaction
from django.utils import timezone

from ledger.authz import ActorContext


@dataclass(frozen=True)
class OperationContext:
    actor: ActorContext
    using: str = "default"
    operation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=timezone.now)

    @classmethod
    def begin(cls, actor: ActorContext, using: str = "default") -> "OperationContext":
        return cls(actor=actor, using=using)

    def atomic(self):
        """Transaction (or savepoint, when nested) on this context's database."""
        return transaction.atomic(using=self.using)

    def query(self, model):
        """Default queryset for ``model`` bound to this context's database."""
        return model.objects.using(self.using)

    @property
    def today(self) -> date:
        return timezone.localdate(self.started_at)

    def log_extra(self, **fields) -> dict:
        """``extra=`` payload for structured log lines."""
        return {"operation_id": self.operation_id, "actor": self.actor.actor_id, **fields}
