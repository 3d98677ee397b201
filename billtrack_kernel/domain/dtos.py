"""
Data transfer objects (``billtrack_kernel.domain.dtos``).

Frozen snapshots handed back to callers instead of live ORM rows, plus the
result envelopes every orchestrator operation returns: the changed record(s)
and the tuple of ``WorkflowEvent`` intents to dispatch after commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from billtrack_kernel.domain.approval import ApprovalStatus
from billtrack_kernel.domain.document import DocumentType, TransactionType
from billtrack_kernel.domain.events import WorkflowEvent
from billtrack_kernel.domain.payments import PayerType, SettlementStatus


@dataclass(frozen=True)
class TransactionRecord:
    id: UUID
    transaction_type: TransactionType
    company_id: UUID
    counterparty_ref: str | None
    description: str | None
    base_amount: Decimal
    vat_rate_percent: Decimal
    vat_amount: Decimal | None
    is_withholding_applicable: bool
    withholding_rate_percent: Decimal | None
    withholding_amount: Decimal | None
    total_with_vat: Decimal
    net_amount: Decimal
    has_tax_document: bool
    has_withholding_certificate: bool
    document_type: DocumentType | None
    approval_status: ApprovalStatus
    document_workflow_status: str
    created_at: datetime | None
    created_by_id: UUID
    submitted_at: datetime | None = None
    submitted_by: UUID | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    deleted_at: datetime | None = None

    @property
    def net_paid(self) -> Decimal | None:
        """Money the entity pays out (expenses only)."""
        return self.net_amount if self.transaction_type is TransactionType.EXPENSE else None

    @property
    def net_received(self) -> Decimal | None:
        """Money the entity receives after the customer withholds (incomes only)."""
        return self.net_amount if self.transaction_type is TransactionType.INCOME else None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class PaymentRecord:
    id: UUID
    transaction_id: UUID
    payer_type: PayerType
    payer_ref: UUID | None
    payer_name: str | None
    amount: Decimal
    settlement_status: SettlementStatus
    settled_at: datetime | None = None
    settled_by: UUID | None = None
    settlement_reference: str | None = None
    settlement_attachments: tuple[str, ...] = ()
    reversed_at: datetime | None = None
    reversed_by: UUID | None = None
    reversal_reason: str | None = None
    payout_transaction_id: UUID | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SettlementHistoryEntry:
    """One settle (and its reversal, if any) of a payment row."""

    id: UUID
    payment_id: UUID
    amount: Decimal
    settled_at: datetime
    settled_by: UUID
    reference: str | None
    attachments: tuple[str, ...]
    reversed_at: datetime | None = None
    reversed_by: UUID | None = None
    reversal_reason: str | None = None

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None


# =============================================================================
# Result envelopes
# =============================================================================


@dataclass(frozen=True)
class WorkflowResult:
    transaction: TransactionRecord
    events: tuple[WorkflowEvent, ...] = ()


@dataclass(frozen=True)
class PaymentResult:
    payment: PaymentRecord
    events: tuple[WorkflowEvent, ...] = ()


@dataclass(frozen=True)
class PaymentsResult:
    payments: tuple[PaymentRecord, ...]
    events: tuple[WorkflowEvent, ...] = ()


class BatchItemStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class BatchItemOutcome:
    """Per-id result of a batch operation.  ``reason_code`` is the error code
    of the skip (e.g. ALREADY_SETTLED, APPROVAL_REQUIRED)."""

    item_id: UUID
    status: BatchItemStatus
    reason_code: str | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is BatchItemStatus.SUCCEEDED


@dataclass(frozen=True)
class BatchSettleResult:
    outcomes: tuple[BatchItemOutcome, ...]
    created_transaction_ids: tuple[UUID, ...] = ()
    events: tuple[WorkflowEvent, ...] = ()

    @property
    def settled_ids(self) -> tuple[UUID, ...]:
        return tuple(o.item_id for o in self.outcomes if o.succeeded)

    @property
    def skipped(self) -> tuple[BatchItemOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.succeeded)


@dataclass(frozen=True)
class BatchApprovalResult:
    outcomes: tuple[BatchItemOutcome, ...]
    events: tuple[WorkflowEvent, ...] = ()

    @property
    def approved_ids(self) -> tuple[UUID, ...]:
        return tuple(o.item_id for o in self.outcomes if o.succeeded)


@dataclass(frozen=True)
class StatusRepair:
    transaction_id: UUID
    from_status: str
    to_status: str


@dataclass(frozen=True)
class RepairReport:
    repairs: tuple[StatusRepair, ...] = ()
    events: tuple[WorkflowEvent, ...] = field(default_factory=tuple)

    @property
    def repaired_count(self) -> int:
        return len(self.repairs)
