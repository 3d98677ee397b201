"""
Typed Exception Hierarchy for the BillTrack Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Route handlers sitting above the engine have to tell the user *why* an
operation was refused, not only *that* it was refused.  Parsing messages is
fragile, so every failure here is:
  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (the rule that failed, the current state)

Example - WRONG way to handle errors:
    try:
        orchestrator.settle_payment(payment_id, actor_id, "TRF-001")
    except Exception as e:
        if "approved" in str(e):
            ...

Example - RIGHT way (what this module enables):
    try:
        orchestrator.settle_payment(payment_id, actor_id, "TRF-001")
    except ApprovalRequiredError as e:
        api_response(code=e.code, approval_status=e.approval_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillTrackError (base)
    |
    +-- InvalidAmountError
    |   +-- PaymentExceedsNetAmountError
    |
    +-- InvalidTransitionError
    +-- ApprovalRequiredError
    +-- AlreadySettledError
    +-- SelfApprovalForbiddenError
    +-- CapabilityDeniedError
    +-- InvalidPayloadError
    |
    +-- NotFoundError
        +-- TransactionNotFoundError
        +-- PaymentNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|---------------------------------------------------
INVALID_AMOUNT              | Non-positive base, negative rate, rate not allowed
PAYMENT_EXCEEDS_NET_AMOUNT  | Attributed payments would exceed the net amount
INVALID_TRANSITION          | State change not permitted from the current state
APPROVAL_REQUIRED           | Settling a payment of an unapproved transaction
ALREADY_SETTLED             | Redundant settle, or mutating a settled row
SELF_APPROVAL_FORBIDDEN     | Approver is the submitter
CAPABILITY_DENIED           | Actor lacks the capability for the operation
INVALID_PAYLOAD             | Mutation input failed boundary validation
NOT_FOUND                   | Id does not exist or is soft-deleted
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID


class BillTrackError(Exception):
    """Base exception for all kernel errors."""

    code: str = "BILLTRACK_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable view of the error for API responses."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in vars(self).items():
            if key.startswith("_") or key in ("message", "args"):
                continue
            payload[key] = str(value) if isinstance(value, (UUID, Decimal)) else value
        return payload


# =============================================================================
# Amount errors
# =============================================================================


class InvalidAmountError(BillTrackError):
    """A monetary amount or rate failed validation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Any, rule: str):
        self.field = field
        self.value = value
        self.rule = rule
        super().__init__(f"Invalid {field} {value!r}: {rule}")


class PaymentExceedsNetAmountError(InvalidAmountError):
    """Attributed payment rows would exceed the transaction's net amount."""

    code: str = "PAYMENT_EXCEEDS_NET_AMOUNT"

    def __init__(
        self,
        transaction_id: UUID,
        attributed_total: Decimal,
        net_amount: Decimal,
    ):
        self.transaction_id = transaction_id
        self.attributed_total = attributed_total
        self.net_amount = net_amount
        super().__init__(
            "payment_total",
            attributed_total,
            f"exceeds net amount {net_amount} of transaction {transaction_id}",
        )


# =============================================================================
# State machine errors
# =============================================================================


class InvalidTransitionError(BillTrackError):
    """Requested state change is not permitted from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity: str,
        current_state: str,
        requested: str,
        rule: str | None = None,
    ):
        self.entity = entity
        self.current_state = current_state
        self.requested = requested
        self.rule = rule
        detail = f": {rule}" if rule else ""
        super().__init__(
            f"Cannot {requested} {entity} in state {current_state}{detail}"
        )


class ApprovalRequiredError(BillTrackError):
    """Settlement attempted while the owning transaction is not approved."""

    code: str = "APPROVAL_REQUIRED"

    def __init__(self, payment_id: UUID, transaction_id: UUID, approval_status: str):
        self.payment_id = payment_id
        self.transaction_id = transaction_id
        self.approval_status = approval_status
        super().__init__(
            f"Payment {payment_id} cannot be settled: transaction "
            f"{transaction_id} approval status is {approval_status}"
        )


class AlreadySettledError(BillTrackError):
    """The payment row is already SETTLED."""

    code: str = "ALREADY_SETTLED"

    def __init__(self, payment_id: UUID, settled_by: UUID | None = None):
        self.payment_id = payment_id
        self.settled_by = settled_by
        super().__init__(f"Payment {payment_id} is already settled")


class SelfApprovalForbiddenError(BillTrackError):
    """The approver is the actor who submitted the transaction."""

    code: str = "SELF_APPROVAL_FORBIDDEN"

    def __init__(self, transaction_id: UUID, actor_id: UUID):
        self.transaction_id = transaction_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} submitted transaction {transaction_id} "
            "and cannot decide its approval"
        )


# =============================================================================
# Boundary errors
# =============================================================================


class CapabilityDeniedError(BillTrackError):
    """The actor does not hold the capability the operation requires."""

    code: str = "CAPABILITY_DENIED"

    def __init__(self, actor_id: UUID, company_id: UUID, capability: str):
        self.actor_id = actor_id
        self.company_id = company_id
        self.capability = capability
        super().__init__(
            f"Actor {actor_id} lacks capability {capability} in company {company_id}"
        )


class InvalidPayloadError(BillTrackError):
    """A mutation input failed validation before reaching a state machine."""

    code: str = "INVALID_PAYLOAD"

    def __init__(self, field: str, rule: str):
        self.field = field
        self.rule = rule
        super().__init__(f"Invalid {field}: {rule}")


# =============================================================================
# Lookup errors
# =============================================================================


class NotFoundError(BillTrackError):
    """Referenced record does not exist or is soft-deleted."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: UUID, deleted: bool = False):
        self.entity = entity
        self.entity_id = entity_id
        self.deleted = deleted
        state = "is deleted" if deleted else "not found"
        super().__init__(f"{entity} {entity_id} {state}")


class TransactionNotFoundError(NotFoundError):
    """Transaction id unknown or soft-deleted."""

    def __init__(self, transaction_id: UUID, deleted: bool = False):
        self.transaction_id = transaction_id
        super().__init__("Transaction", transaction_id, deleted)


class PaymentNotFoundError(NotFoundError):
    """Payment attribution id unknown, or its transaction is soft-deleted."""

    def __init__(self, payment_id: UUID, deleted: bool = False):
        self.payment_id = payment_id
        super().__init__("Payment", payment_id, deleted)
