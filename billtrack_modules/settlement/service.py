"""
Settlement Ledger Service (``billtrack_modules.settlement.service``).

Responsibility
--------------
Records who funded each expense (payment attributions) and tracks the
reimbursement of individuals who fronted their own money: attach, replace
and remove attributions, change a row's payer type, settle, reverse and
batch-settle, optionally creating one payout expense per reimbursed payer.

Architecture position
---------------------
**Modules layer**.  ``SettlementLedger`` flushes but never commits; the
``WorkflowOrchestrator`` owns the transaction boundary and wraps every
call in commit-on-success / rollback-on-failure.

Invariants enforced
-------------------
* Settlement status is a function of payer type: INDIVIDUAL -> PENDING,
  ENTITY and PETTY_CASH_FUND -> NOT_REQUIRED.  Callers never choose it.
* The attributed total of an expense never exceeds its ``net_amount``.
* Only PENDING rows of APPROVED or NOT_REQUIRED transactions can be
  settled; only SETTLED rows can be reversed; SETTLED rows cannot be
  removed or re-typed.  Moves follow ``SETTLEMENT_TRANSITIONS``.
* A row that was ever settled keeps its settlement records: ``replace``
  leaves it in place and ``remove`` refuses it.
* A reversal keeps the settlement metadata and closes the open
  ``SettlementRecordModel``; every settle appends a new one.
* Every row is read under ``SELECT ... FOR UPDATE`` before it changes.

Failure modes
-------------
* ``PaymentNotFoundError`` / ``TransactionNotFoundError`` -- missing id or
  soft-deleted owning transaction.
* ``AlreadySettledError``, ``InvalidTransitionError``,
  ``ApprovalRequiredError`` -- settlement state machine violations.
* ``PaymentExceedsNetAmountError`` -- attributions larger than the net.
* ``CapabilityDeniedError`` -- actor lacks ``settlements:manage`` or
  ``expenses:update``.
* ``batch_settle`` turns per-row ``BillTrackError``s into SKIPPED outcomes;
  anything else propagates.

Audit relevance
---------------
Every mutation returns AUDIT ``WorkflowEvent``s; settle and reverse also
return a NOTIFY event addressed to the reimbursed individual.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billtrack_config.schema import SettlementPolicy
from billtrack_kernel.db.types import ZERO, round2
from billtrack_kernel.domain.approval import SETTLEABLE_APPROVAL_STATUSES, ApprovalStatus
from billtrack_kernel.domain.capability import CapabilityResolver, require_capability
from billtrack_kernel.domain.clock import Clock, SystemClock
from billtrack_kernel.domain.commands import (
    BatchSettleOptions,
    PaymentAttributionInput,
    require_reason,
)
from billtrack_kernel.domain.document import (
    DocumentType,
    ExpenseWorkflowStatus,
    TransactionType,
)
from billtrack_kernel.domain.dtos import (
    BatchItemOutcome,
    BatchItemStatus,
    BatchSettleResult,
    PaymentResult,
    PaymentsResult,
)
from billtrack_kernel.domain.events import EventAction, WorkflowEvent
from billtrack_kernel.domain.payments import (
    SETTLEMENT_TRANSITIONS,
    PayerType,
    SettlementStatus,
    settlement_status_for,
)
from billtrack_kernel.exceptions import (
    AlreadySettledError,
    ApprovalRequiredError,
    BillTrackError,
    InvalidAmountError,
    InvalidPayloadError,
    InvalidTransitionError,
    PaymentExceedsNetAmountError,
    PaymentNotFoundError,
    TransactionNotFoundError,
)
from billtrack_kernel.logging_config import LogContext, get_logger
from billtrack_kernel.models.payment import PaymentAttributionModel, SettlementRecordModel
from billtrack_kernel.models.transaction import ExpenseModel, TransactionModel

logger = get_logger("modules.settlement.service")

SETTLEMENT_CAPABILITY = "settlements:manage"
ATTRIBUTION_CAPABILITY = "expenses:update"


def _has_settlement_trail(payment: PaymentAttributionModel) -> bool:
    """SETTLED now, or settled once and reversed."""
    return (
        payment.settlement_status == SettlementStatus.SETTLED.value
        or bool(payment.history)
    )


@dataclass
class _PayoutGroup:
    company_id: UUID
    payer_ref: UUID
    payer_name: str | None
    payments: list[PaymentAttributionModel]

    @property
    def total(self) -> Decimal:
        return round2(sum((p.amount for p in self.payments), ZERO))


class SettlementLedger:
    """
    Payment attribution and reimbursement ledger.

    Contract:
        Every public method reads the rows it changes under a row lock,
        flushes its writes, and returns frozen DTOs plus ``WorkflowEvent``
        intents.  The caller commits or rolls back.
    """

    def __init__(
        self,
        session: Session,
        capabilities: CapabilityResolver,
        config: SettlementPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._capabilities = capabilities
        self._config = config or SettlementPolicy()
        self._clock = clock or SystemClock()

    # =========================================================================
    # Row loading
    # =========================================================================

    def _lock_transaction(self, transaction_id: UUID) -> TransactionModel:
        tx = self._session.execute(
            select(TransactionModel)
            .where(TransactionModel.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        if tx.is_deleted:
            raise TransactionNotFoundError(transaction_id, deleted=True)
        return tx

    def _lock_payment(
        self, payment_id: UUID,
    ) -> tuple[PaymentAttributionModel, TransactionModel]:
        payment = self._session.execute(
            select(PaymentAttributionModel)
            .where(PaymentAttributionModel.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        try:
            tx = self._lock_transaction(payment.transaction_id)
        except TransactionNotFoundError as exc:
            raise PaymentNotFoundError(payment_id, deleted=True) from exc
        return payment, tx

    @staticmethod
    def _coerce(
        attribution: PaymentAttributionInput | Mapping[str, Any],
    ) -> PaymentAttributionInput:
        if isinstance(attribution, PaymentAttributionInput):
            return attribution
        return PaymentAttributionInput.from_payload(attribution)

    @staticmethod
    def _check_fits(tx: TransactionModel, attributed: Decimal) -> None:
        if attributed > tx.net_amount:
            raise PaymentExceedsNetAmountError(
                transaction_id=tx.id,
                attributed_total=attributed,
                net_amount=tx.net_amount,
            )

    def _new_row(
        self,
        tx: TransactionModel,
        row: PaymentAttributionInput,
        actor_id: UUID,
    ) -> PaymentAttributionModel:
        amount = round2(row.amount)
        if amount <= ZERO:
            raise InvalidAmountError("amount", row.amount, "rounds to zero")
        payment = PaymentAttributionModel(
            id=uuid4(),
            transaction_id=tx.id,
            payer_type=row.payer_type.value,
            payer_ref=row.payer_ref,
            payer_name=row.payer_name,
            amount=amount,
            settlement_status=settlement_status_for(row.payer_type).value,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        tx.payments.append(payment)
        return payment

    # =========================================================================
    # Attribution maintenance
    # =========================================================================

    def attach(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        attributions: Sequence[PaymentAttributionInput | Mapping[str, Any]],
    ) -> PaymentsResult:
        """
        Attach funding sources to an expense.

        Attaching before approval is allowed; settlement is what waits for
        approval.

        Raises:
            TransactionNotFoundError: Missing or soft-deleted transaction.
            InvalidPayloadError: Not an expense, empty list, bad row.
            PaymentExceedsNetAmountError: Existing plus new rows exceed net.
        """
        rows = [self._coerce(a) for a in attributions]
        if not rows:
            raise InvalidPayloadError("attributions", "at least one attribution is required")

        tx = self._lock_transaction(transaction_id)
        if tx.transaction_type != TransactionType.EXPENSE.value:
            raise InvalidPayloadError(
                "transaction_id", "payments can only be attached to expenses",
            )
        require_capability(self._capabilities, actor_id, tx.company_id, ATTRIBUTION_CAPABILITY)

        existing = sum((p.amount for p in tx.payments), ZERO)
        added = sum((round2(r.amount) for r in rows), ZERO)
        self._check_fits(tx, existing + added)

        created = [self._new_row(tx, row, actor_id) for row in rows]
        self._session.flush()

        logger.info("payments_attached", extra={
            "transaction_id": str(tx.id),
            "count": len(created),
            "attributed_total": str(existing + added),
        })
        return PaymentsResult(
            payments=tuple(p.to_dto() for p in created),
            events=(
                WorkflowEvent.audit(
                    EventAction.PAYMENTS_ATTACHED, tx.id, actor_id,
                    payment_ids=[str(p.id) for p in created],
                    amounts=[str(p.amount) for p in created],
                ),
            ),
        )

    def replace(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        attributions: Sequence[PaymentAttributionInput | Mapping[str, Any]],
    ) -> PaymentsResult:
        """Rebuild an expense's attribution list.

        Rows that were ever settled (SETTLED now, or reversed and PENDING
        again) survive untouched along with their settlement records and
        count against the net amount.  Every other row is deleted and the
        new rows are added in its place.
        """
        rows = [self._coerce(a) for a in attributions]
        tx = self._lock_transaction(transaction_id)
        if tx.transaction_type != TransactionType.EXPENSE.value:
            raise InvalidPayloadError(
                "transaction_id", "payments can only be attached to expenses",
            )
        require_capability(self._capabilities, actor_id, tx.company_id, ATTRIBUTION_CAPABILITY)

        kept = [p for p in tx.payments if _has_settlement_trail(p)]
        removed = [p for p in tx.payments if p not in kept]
        kept_total = sum((p.amount for p in kept), ZERO)
        added = sum((round2(r.amount) for r in rows), ZERO)
        self._check_fits(tx, kept_total + added)

        for payment in removed:
            tx.payments.remove(payment)
        created = [self._new_row(tx, row, actor_id) for row in rows]
        self._session.flush()

        logger.info("payments_replaced", extra={
            "transaction_id": str(tx.id),
            "removed": len(removed),
            "kept": len(kept),
            "added": len(created),
        })
        events: list[WorkflowEvent] = []
        if removed:
            events.append(WorkflowEvent.audit(
                EventAction.PAYMENTS_REMOVED, tx.id, actor_id,
                payment_ids=[str(p.id) for p in removed],
            ))
        if created:
            events.append(WorkflowEvent.audit(
                EventAction.PAYMENTS_ATTACHED, tx.id, actor_id,
                payment_ids=[str(p.id) for p in created],
                amounts=[str(p.amount) for p in created],
            ))
        return PaymentsResult(
            payments=tuple(p.to_dto() for p in tx.payments),
            events=tuple(events),
        )

    def remove(self, payment_ids: Iterable[UUID], actor_id: UUID) -> PaymentsResult:
        """Delete attribution rows that were never settled.  All or nothing.

        Raises:
            AlreadySettledError: One of the rows is SETTLED.
            InvalidTransitionError: One of the rows was settled and later
                reversed; its settlement records must stay.
        """
        ids = list(dict.fromkeys(payment_ids))
        if not ids:
            raise InvalidPayloadError("payment_ids", "at least one id is required")

        removed: list[tuple[PaymentAttributionModel, TransactionModel]] = []
        for payment_id in ids:
            payment, tx = self._lock_payment(payment_id)
            require_capability(
                self._capabilities, actor_id, tx.company_id, ATTRIBUTION_CAPABILITY,
            )
            if payment.settlement_status == SettlementStatus.SETTLED.value:
                raise AlreadySettledError(payment.id, settled_by=payment.settled_by)
            if _has_settlement_trail(payment):
                raise InvalidTransitionError(
                    entity="settlement",
                    current_state=payment.settlement_status,
                    requested="remove",
                    rule="payments with settlement history cannot be removed",
                )
            removed.append((payment, tx))

        snapshots = tuple(p.to_dto() for p, _ in removed)
        by_transaction: dict[UUID, list[str]] = {}
        for payment, tx in removed:
            by_transaction.setdefault(tx.id, []).append(str(payment.id))
            tx.payments.remove(payment)
        self._session.flush()

        logger.info("payments_removed", extra={"count": len(snapshots)})
        return PaymentsResult(
            payments=snapshots,
            events=tuple(
                WorkflowEvent.audit(
                    EventAction.PAYMENTS_REMOVED, tx_id, actor_id, payment_ids=pids,
                )
                for tx_id, pids in by_transaction.items()
            ),
        )

    def change_payer_type(
        self,
        payment_id: UUID,
        actor_id: UUID,
        payer_type: PayerType | str,
        payer_ref: UUID | None = None,
        payer_name: str | None = None,
    ) -> PaymentResult:
        """Re-type a row and recompute its settlement status."""
        payment, tx = self._lock_payment(payment_id)
        require_capability(self._capabilities, actor_id, tx.company_id, ATTRIBUTION_CAPABILITY)
        if payment.settlement_status == SettlementStatus.SETTLED.value:
            raise AlreadySettledError(payment.id, settled_by=payment.settled_by)

        row = PaymentAttributionInput(
            payer_type=payer_type,
            amount=payment.amount,
            payer_ref=payer_ref,
            payer_name=payer_name,
        )
        previous = (payment.payer_type, payment.settlement_status)
        payment.payer_type = row.payer_type.value
        payment.payer_ref = row.payer_ref
        payment.payer_name = row.payer_name
        payment.settlement_status = settlement_status_for(row.payer_type).value
        payment.updated_by_id = actor_id
        self._session.flush()

        logger.info("payer_type_changed", extra={
            "payment_id": str(payment.id),
            "from_payer_type": previous[0],
            "to_payer_type": payment.payer_type,
            "settlement_status": payment.settlement_status,
        })
        return PaymentResult(
            payment=payment.to_dto(),
            events=(
                WorkflowEvent.audit(
                    EventAction.PAYER_CHANGED, tx.id, actor_id,
                    payment_id=str(payment.id),
                    from_payer_type=previous[0],
                    to_payer_type=payment.payer_type,
                    from_status=previous[1],
                    to_status=payment.settlement_status,
                ),
            ),
        )

    # =========================================================================
    # Settlement
    # =========================================================================

    def _settle_row(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reference: str | None,
        attachments: tuple[str, ...],
    ) -> tuple[PaymentAttributionModel, TransactionModel, list[WorkflowEvent]]:
        payment, tx = self._lock_payment(payment_id)
        require_capability(self._capabilities, actor_id, tx.company_id, SETTLEMENT_CAPABILITY)

        status = SettlementStatus(payment.settlement_status)
        if status is SettlementStatus.SETTLED:
            raise AlreadySettledError(payment.id, settled_by=payment.settled_by)
        if SettlementStatus.SETTLED not in SETTLEMENT_TRANSITIONS[status]:
            raise InvalidTransitionError(
                entity="settlement",
                current_state=status.value,
                requested="settle",
                rule=f"{payment.payer_type} payments need no reimbursement",
            )
        if ApprovalStatus(tx.approval_status) not in SETTLEABLE_APPROVAL_STATUSES:
            raise ApprovalRequiredError(
                payment_id=payment.id,
                transaction_id=tx.id,
                approval_status=tx.approval_status,
            )

        now = self._clock.now()
        payment.settlement_status = SettlementStatus.SETTLED.value
        payment.settled_at = now
        payment.settled_by = actor_id
        payment.settlement_reference = reference
        payment.settlement_attachments = list(attachments)
        payment.reversed_at = None
        payment.reversed_by = None
        payment.reversal_reason = None
        payment.updated_by_id = actor_id
        payment.history.append(SettlementRecordModel(
            id=uuid4(),
            amount=payment.amount,
            settled_at=now,
            settled_by=actor_id,
            reference=reference,
            attachments=list(attachments),
            created_at=now,
            created_by_id=actor_id,
        ))
        self._session.flush()

        events = [
            WorkflowEvent.audit(
                EventAction.PAYMENT_SETTLED, tx.id, actor_id,
                payment_id=str(payment.id),
                amount=str(payment.amount),
                reference=reference,
            ),
            WorkflowEvent.notify(
                EventAction.PAYMENT_SETTLED, tx.id, actor_id, [payment.payer_ref],
                payment_id=str(payment.id),
                amount=str(payment.amount),
            ),
        ]
        return payment, tx, events

    def settle(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reference: str | None = None,
        attachments: Sequence[str] = (),
    ) -> PaymentResult:
        """
        Mark a PENDING row as reimbursed.

        Check order: missing or deleted -> ``PaymentNotFoundError``;
        SETTLED -> ``AlreadySettledError``; NOT_REQUIRED ->
        ``InvalidTransitionError``; owning transaction PENDING or REJECTED
        -> ``ApprovalRequiredError``.
        """
        options = BatchSettleOptions(reference=reference, attachments=tuple(attachments))
        with LogContext.bind(payment_id=payment_id):
            payment, _, events = self._settle_row(
                payment_id, actor_id, options.reference, options.attachments,
            )
            logger.info("payment_settled", extra={
                "amount": str(payment.amount),
                "reference": options.reference,
            })
        return PaymentResult(payment=payment.to_dto(), events=tuple(events))

    def reverse(self, payment_id: UUID, actor_id: UUID, reason: str | None) -> PaymentResult:
        """
        Undo a settlement so the row can be settled again.

        The settled_* fields stay on the row; the reversal is stamped
        alongside and the open settlement record is closed.

        Raises:
            InvalidPayloadError: Blank reason.
            InvalidTransitionError: Row is not SETTLED.
        """
        reason = require_reason(reason)
        with LogContext.bind(payment_id=payment_id):
            payment, tx = self._lock_payment(payment_id)
            require_capability(
                self._capabilities, actor_id, tx.company_id, SETTLEMENT_CAPABILITY,
            )
            status = SettlementStatus(payment.settlement_status)
            if SettlementStatus.PENDING not in SETTLEMENT_TRANSITIONS[status]:
                raise InvalidTransitionError(
                    entity="settlement",
                    current_state=payment.settlement_status,
                    requested="reverse",
                    rule="only SETTLED payments can be reversed",
                )

            now = self._clock.now()
            payment.settlement_status = SettlementStatus.PENDING.value
            payment.reversed_at = now
            payment.reversed_by = actor_id
            payment.reversal_reason = reason
            payment.updated_by_id = actor_id
            for record in payment.history:
                if record.is_open:
                    record.reversed_at = now
                    record.reversed_by = actor_id
                    record.reversal_reason = reason
            self._session.flush()

            logger.info("payment_reversed", extra={
                "amount": str(payment.amount),
                "original_reference": payment.settlement_reference,
            })
        return PaymentResult(
            payment=payment.to_dto(),
            events=(
                WorkflowEvent.audit(
                    EventAction.PAYMENT_REVERSED, tx.id, actor_id,
                    payment_id=str(payment.id),
                    amount=str(payment.amount),
                    original_reference=payment.settlement_reference,
                    reason=reason,
                ),
                WorkflowEvent.notify(
                    EventAction.PAYMENT_REVERSED, tx.id, actor_id, [payment.payer_ref],
                    payment_id=str(payment.id),
                    reason=reason,
                ),
            ),
        )

    def batch_settle(
        self,
        payment_ids: Sequence[UUID],
        actor_id: UUID,
        options: BatchSettleOptions | None = None,
    ) -> BatchSettleResult:
        """
        Settle many rows, each in its own SAVEPOINT.

        Rows that cannot be settled (already settled, not approved, not
        found, no reimbursement needed) are reported as SKIPPED with the
        error code; the rest are settled.  With
        ``create_reimbursement_expenses`` one payout expense is created per
        (company, payer) for the rows settled in this call.

        Raises:
            InvalidPayloadError: Empty id list, or more ids than
                ``SettlementPolicy.max_batch_size``.
        """
        options = options or BatchSettleOptions()
        ids = list(dict.fromkeys(payment_ids))
        if not ids:
            raise InvalidPayloadError("payment_ids", "at least one id is required")
        if len(ids) > self._config.max_batch_size:
            raise InvalidPayloadError(
                "payment_ids",
                f"at most {self._config.max_batch_size} ids per batch, got {len(ids)}",
            )

        logger.info("batch_settle_started", extra={
            "requested": len(ids),
            "create_reimbursement_expenses": options.create_reimbursement_expenses,
        })

        outcomes: list[BatchItemOutcome] = []
        events: list[WorkflowEvent] = []
        groups: dict[tuple[UUID, UUID], _PayoutGroup] = {}

        for payment_id in ids:
            savepoint = self._session.begin_nested()
            try:
                payment, tx, row_events = self._settle_row(
                    payment_id, actor_id, options.reference, options.attachments,
                )
                savepoint.commit()
            except BillTrackError as exc:
                savepoint.rollback()
                outcomes.append(BatchItemOutcome(
                    item_id=payment_id,
                    status=BatchItemStatus.SKIPPED,
                    reason_code=exc.code,
                    message=exc.message,
                ))
                logger.warning("batch_settle_item_skipped", extra={
                    "payment_id": str(payment_id),
                    "reason_code": exc.code,
                })
                continue

            outcomes.append(BatchItemOutcome(item_id=payment_id, status=BatchItemStatus.SUCCEEDED))
            events.extend(row_events)
            key = (tx.company_id, payment.payer_ref)
            group = groups.setdefault(
                key, _PayoutGroup(tx.company_id, payment.payer_ref, payment.payer_name, []),
            )
            group.payments.append(payment)
            if group.payer_name is None:
                group.payer_name = payment.payer_name

        created: list[UUID] = []
        if options.create_reimbursement_expenses:
            for group in groups.values():
                payout = self._create_payout(group, actor_id, options.reference)
                created.append(payout.id)
                events.append(WorkflowEvent.audit(
                    EventAction.REIMBURSEMENT_PAYOUT_CREATED, payout.id, actor_id,
                    payer_ref=str(group.payer_ref),
                    amount=str(group.total),
                    payment_ids=[str(p.id) for p in group.payments],
                ))
            self._session.flush()

        settled_count = sum(1 for o in outcomes if o.succeeded)
        events.append(WorkflowEvent.audit(
            EventAction.BATCH_SETTLED, None, actor_id,
            settled=settled_count,
            skipped=len(outcomes) - settled_count,
            reference=options.reference,
            payout_transaction_ids=[str(i) for i in created],
        ))
        logger.info("batch_settle_completed", extra={
            "settled": settled_count,
            "skipped": len(outcomes) - settled_count,
            "payouts_created": len(created),
        })
        return BatchSettleResult(
            outcomes=tuple(outcomes),
            created_transaction_ids=tuple(created),
            events=tuple(events),
        )

    def _create_payout(
        self,
        group: _PayoutGroup,
        actor_id: UUID,
        reference: str | None,
    ) -> ExpenseModel:
        """Company-funded expense recording the money paid back to one person."""
        now = self._clock.now()
        total = group.total
        who = group.payer_name or str(group.payer_ref)
        description = f"{self._config.payout_description_prefix}: {who}"
        if reference:
            description = f"{description} ({reference})"

        payout = ExpenseModel(
            id=uuid4(),
            company_id=group.company_id,
            counterparty_ref=who,
            description=description,
            base_amount=total,
            vat_rate_percent=ZERO,
            vat_amount=None,
            is_withholding_applicable=False,
            withholding_rate_percent=None,
            withholding_amount=None,
            total_with_vat=total,
            net_amount=total,
            has_tax_document=False,
            has_withholding_certificate=False,
            document_type=DocumentType.NO_DOCUMENT.value,
            approval_status=ApprovalStatus.NOT_REQUIRED.value,
            document_workflow_status=ExpenseWorkflowStatus.COMPLETED.value,
            reimbursement_payer_ref=group.payer_ref,
            created_at=now,
            created_by_id=actor_id,
        )
        # ENTITY funding keeps the payout itself out of the reimbursement queue.
        payout.payments.append(PaymentAttributionModel(
            id=uuid4(),
            transaction_id=payout.id,
            payer_type=PayerType.ENTITY.value,
            amount=total,
            settlement_status=SettlementStatus.NOT_REQUIRED.value,
            created_at=now,
            created_by_id=actor_id,
        ))
        self._session.add(payout)
        for payment in group.payments:
            payment.payout_transaction_id = payout.id

        logger.info("reimbursement_payout_created", extra={
            "payout_transaction_id": str(payout.id),
            "payer_ref": str(group.payer_ref),
            "amount": str(total),
            "rows": len(group.payments),
        })
        return payout
