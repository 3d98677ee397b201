"""
Approval domain types (``billtrack_kernel.domain.approval``).

Responsibility
--------------
The approval state machine that gates a transaction's entry into its
document workflow: statuses, events, the (status, event) -> status table,
and the pure function that applies an event.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` is the only source of valid approval moves.
  Anything missing from the table is an ``InvalidTransitionError``.
* APPROVED is terminal.  NOT_REQUIRED never re-enters PENDING except
  through an explicit submission of a DRAFT record.
* Only RELEASED statuses let the document workflow leave DRAFT, and only
  SETTLEABLE statuses allow reimbursement of attributed payments.
"""

from __future__ import annotations

from enum import Enum

from billtrack_kernel.exceptions import InvalidTransitionError


class ApprovalStatus(str, Enum):
    """Approval lifecycle states."""

    NOT_REQUIRED = "NOT_REQUIRED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalEvent(str, Enum):
    """Events that move the approval state machine."""

    SUBMIT_FOR_APPROVAL = "SUBMIT_FOR_APPROVAL"
    SUBMIT_DIRECT = "SUBMIT_DIRECT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    WITHDRAW = "WITHDRAW"


class ApprovalDecision(str, Enum):
    """Decision an approver can make on a PENDING transaction."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @property
    def event(self) -> ApprovalEvent:
        return ApprovalEvent(self.value)


APPROVAL_TRANSITIONS: dict[tuple[ApprovalStatus, ApprovalEvent], ApprovalStatus] = {
    (ApprovalStatus.NOT_REQUIRED, ApprovalEvent.SUBMIT_FOR_APPROVAL): ApprovalStatus.PENDING,
    (ApprovalStatus.NOT_REQUIRED, ApprovalEvent.SUBMIT_DIRECT): ApprovalStatus.NOT_REQUIRED,
    (ApprovalStatus.REJECTED, ApprovalEvent.SUBMIT_FOR_APPROVAL): ApprovalStatus.PENDING,
    (ApprovalStatus.REJECTED, ApprovalEvent.SUBMIT_DIRECT): ApprovalStatus.NOT_REQUIRED,
    (ApprovalStatus.PENDING, ApprovalEvent.APPROVE): ApprovalStatus.APPROVED,
    (ApprovalStatus.PENDING, ApprovalEvent.REJECT): ApprovalStatus.REJECTED,
    (ApprovalStatus.PENDING, ApprovalEvent.WITHDRAW): ApprovalStatus.NOT_REQUIRED,
}

# Approval outcomes that let the document workflow leave DRAFT.
RELEASED_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.NOT_REQUIRED,
    ApprovalStatus.APPROVED,
})

# Approval outcomes under which attributed payments may be reimbursed.
SETTLEABLE_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.NOT_REQUIRED,
    ApprovalStatus.APPROVED,
})


def allowed_events(status: ApprovalStatus) -> frozenset[ApprovalEvent]:
    """Events the table accepts from ``status``."""
    return frozenset(event for (src, event) in APPROVAL_TRANSITIONS if src == status)


def apply_approval_event(
    status: ApprovalStatus | str,
    event: ApprovalEvent,
) -> ApprovalStatus:
    """Return the status reached by applying ``event`` to ``status``.

    Raises:
        InvalidTransitionError: The table has no entry for (status, event).
    """
    current = ApprovalStatus(status)
    target = APPROVAL_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransitionError(
            entity="approval",
            current_state=current.value,
            requested=event.value,
            rule=f"allowed from {current.value}: "
            + (", ".join(sorted(e.value for e in allowed_events(current))) or "none"),
        )
    return target
