"""
Workflow events (``billtrack_kernel.domain.events``).

Every mutation returns the side effects it implies as ``WorkflowEvent``
intents instead of performing them.  A dispatcher runs them once the
state change has committed.  NOTIFY events name the users to tell; AUDIT
events carry the before/after picture for the audit log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID


class EventKind(str, Enum):
    NOTIFY = "NOTIFY"
    AUDIT = "AUDIT"


class EventAction(str, Enum):
    """What happened, as seen by notification and audit collaborators."""

    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_UPDATED = "TRANSACTION_UPDATED"
    TRANSACTION_DELETED = "TRANSACTION_DELETED"
    SUBMITTED_FOR_APPROVAL = "SUBMITTED_FOR_APPROVAL"
    SUBMITTED_DIRECT = "SUBMITTED_DIRECT"
    SUBMISSION_WITHDRAWN = "SUBMISSION_WITHDRAWN"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DOCUMENT_STATUS_CHANGED = "DOCUMENT_STATUS_CHANGED"
    DOCUMENT_STATUS_REPAIRED = "DOCUMENT_STATUS_REPAIRED"
    PAYMENTS_ATTACHED = "PAYMENTS_ATTACHED"
    PAYMENTS_REMOVED = "PAYMENTS_REMOVED"
    PAYER_CHANGED = "PAYER_CHANGED"
    PAYMENT_SETTLED = "PAYMENT_SETTLED"
    PAYMENT_REVERSED = "PAYMENT_REVERSED"
    BATCH_SETTLED = "BATCH_SETTLED"
    REIMBURSEMENT_PAYOUT_CREATED = "REIMBURSEMENT_PAYOUT_CREATED"


@dataclass(frozen=True)
class WorkflowEvent:
    """An intent for an external collaborator.

    ``transaction_id`` may be None only for company-wide batch summaries.
    """

    kind: EventKind
    action: EventAction
    transaction_id: UUID | None
    actor_id: UUID | None = None
    target_user_ids: tuple[UUID, ...] = ()
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def audit(
        cls,
        action: EventAction,
        transaction_id: UUID | None,
        actor_id: UUID | None,
        **payload: Any,
    ) -> WorkflowEvent:
        return cls(
            kind=EventKind.AUDIT,
            action=action,
            transaction_id=transaction_id,
            actor_id=actor_id,
            payload=payload,
        )

    @classmethod
    def notify(
        cls,
        action: EventAction,
        transaction_id: UUID | None,
        actor_id: UUID | None,
        targets: list[UUID] | tuple[UUID, ...],
        **payload: Any,
    ) -> WorkflowEvent:
        # Keep first-seen order, drop duplicates.
        unique = tuple(dict.fromkeys(t for t in targets if t is not None))
        return cls(
            kind=EventKind.NOTIFY,
            action=action,
            transaction_id=transaction_id,
            actor_id=actor_id,
            target_user_ids=unique,
            payload=payload,
        )
