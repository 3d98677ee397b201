"""
billtrack_services.workflow_orchestrator -- the engine's single entry point.

Responsibility:
    Drive expenses and incomes through the approval state machine and their
    document workflow, keep the tax amounts derived from the current base
    and rates, and expose the settlement ledger inside the same transaction
    boundary.  Every mutation returns the changed record(s) together with
    the ``WorkflowEvent`` intents (NOTIFY / AUDIT) it implies; nothing is
    sent from here.

Architecture position:
    Services layer.  Composes the pure engines (``billtrack_engines.tax``,
    ``billtrack_engines.document_workflow``), the per-type workflow profiles
    (``billtrack_modules``), the ``SettlementLedger`` and a
    ``CapabilityResolver``.  Route handlers call this and hand the returned
    events to ``EventDispatcher`` after it returns.

Invariants:
    - Each public mutation owns the transaction boundary: commit on
      success, rollback and re-raise on any failure.
    - Every record is read with ``SELECT ... FOR UPDATE`` before it
      changes, so of two concurrent attempts the second observes the
      committed state and fails.
    - Only DRAFT records can be submitted; only PENDING records can be
      approved, rejected or withdrawn; nobody approves their own submission.
    - The document workflow leaves DRAFT only on direct submission or
      approval, and always to the status the document flags derive.
    - Batch operations are per-row atomic and report a per-id outcome.

Failure modes:
    - Typed ``BillTrackError`` subclasses, each carrying the rule that
      failed and the state it failed in.  Rejections are logged at WARNING.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billtrack_config import EngineConfig, get_active_config
from billtrack_engines.document_workflow import (
    derive_status,
    ensure_flags_mutable,
    next_transition,
    repair_status,
)
from billtrack_engines.tax import TaxCalculator, TaxSummary, TransactionTotals
from billtrack_kernel.db.types import ZERO
from billtrack_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalEvent,
    ApprovalStatus,
    apply_approval_event,
)
from billtrack_kernel.domain.capability import CapabilityResolver, require_capability
from billtrack_kernel.domain.clock import Clock, SystemClock
from billtrack_kernel.domain.commands import (
    BatchSettleOptions,
    CreateTransaction,
    DocumentFlagsUpdate,
    PaymentAttributionInput,
    parse_amount,
    require_reason,
)
from billtrack_kernel.domain.document import (
    DocumentFlags,
    DocumentType,
    DocumentWorkflowProfile,
    TransactionType,
)
from billtrack_kernel.domain.dtos import (
    BatchApprovalResult,
    BatchItemOutcome,
    BatchItemStatus,
    BatchSettleResult,
    PaymentResult,
    PaymentsResult,
    RepairReport,
    StatusRepair,
    WorkflowResult,
)
from billtrack_kernel.domain.events import EventAction, WorkflowEvent
from billtrack_kernel.domain.payments import PayerType
from billtrack_kernel.exceptions import (
    BillTrackError,
    InvalidAmountError,
    InvalidPayloadError,
    InvalidTransitionError,
    PaymentExceedsNetAmountError,
    SelfApprovalForbiddenError,
    TransactionNotFoundError,
)
from billtrack_kernel.logging_config import LogContext, get_logger
from billtrack_kernel.models.transaction import ExpenseModel, IncomeModel, TransactionModel
from billtrack_kernel.selectors.base import company_transactions
from billtrack_modules import profile_for
from billtrack_modules.settlement import SettlementLedger

logger = get_logger("services.workflow_orchestrator")

_MODEL_FOR_TYPE: dict[TransactionType, type[TransactionModel]] = {
    TransactionType.EXPENSE: ExpenseModel,
    TransactionType.INCOME: IncomeModel,
}


def _flags_of(tx: TransactionModel) -> DocumentFlags:
    return DocumentFlags(
        has_tax_document=tx.has_tax_document,
        is_withholding_applicable=tx.is_withholding_applicable,
        has_withholding_certificate=tx.has_withholding_certificate,
        document_type=DocumentType(tx.document_type) if tx.document_type else None,
    )


def _apply_totals(
    tx: TransactionModel,
    totals: TransactionTotals,
    vat_rate: Decimal,
    withholding_rate: Decimal | None,
) -> None:
    """Copy computed totals onto the row.

    A zero VAT rate stores NULL VAT; withholding that does not apply stores
    NULL rate and amount.
    """
    tx.base_amount = totals.base
    tx.vat_rate_percent = vat_rate
    tx.vat_amount = totals.vat_amount if vat_rate != ZERO else None
    if tx.is_withholding_applicable:
        tx.withholding_rate_percent = withholding_rate
        tx.withholding_amount = totals.withholding_amount
    else:
        tx.withholding_rate_percent = None
        tx.withholding_amount = None
    tx.total_with_vat = totals.total_with_vat
    tx.net_amount = totals.net_amount


class WorkflowOrchestrator:
    """
    Approval, document workflow and settlement operations.

    Contract:
        Public mutations commit on success and roll back on failure; the
        returned DTOs are snapshots taken before commit.  ``compute_totals``
        and ``summarize`` are pure and touch no session.
    """

    def __init__(
        self,
        session: Session,
        capabilities: CapabilityResolver,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._capabilities = capabilities
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._tax = TaxCalculator(
            vat_rates=self._config.tax.vat_rates,
            withholding_rates=self._config.tax.withholding_rates,
            withholding_categories=self._config.tax.withholding_categories,
        )
        self._ledger = SettlementLedger(
            session, capabilities, self._config.settlement, self._clock,
        )

    # =========================================================================
    # Plumbing
    # =========================================================================

    @contextmanager
    def _unit_of_work(self, operation: str, **context: Any) -> Iterator[None]:
        with LogContext.bind(**context):
            try:
                yield
                self._session.commit()
            except BillTrackError as exc:
                self._session.rollback()
                logger.warning("operation_rejected", extra={
                    "operation": operation,
                    "error_code": exc.code,
                    "error_message": exc.message,
                })
                raise
            except Exception:
                self._session.rollback()
                logger.exception("operation_failed", extra={"operation": operation})
                raise

    def _lock(self, transaction_id: UUID) -> TransactionModel:
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

    def _require(self, actor_id: UUID, tx: TransactionModel, action: str) -> DocumentWorkflowProfile:
        profile = profile_for(tx.transaction_type)
        require_capability(
            self._capabilities, actor_id, tx.company_id, profile.capability(action),
        )
        return profile

    def _withholding_rate(
        self,
        applicable: bool,
        rate: Decimal | None,
        category: str | None = None,
    ) -> Decimal | None:
        if not applicable:
            return None
        if rate is None and category is not None:
            return self._tax.rate_for_category(category)
        if rate is None:
            raise InvalidAmountError(
                "withholding_rate_percent", None,
                "a rate is required when withholding applies",
            )
        return rate

    def _release(
        self,
        tx: TransactionModel,
        profile: DocumentWorkflowProfile,
        actor_id: UUID,
    ) -> list[WorkflowEvent]:
        """Move a DRAFT record to the status its flags derive."""
        target = derive_status(profile, _flags_of(tx))
        previous = tx.document_workflow_status
        tx.document_workflow_status = target
        logger.info("document_status_changed", extra={
            "from_status": previous,
            "to_status": target,
            "trigger": "release",
        })
        return [WorkflowEvent.audit(
            EventAction.DOCUMENT_STATUS_CHANGED, tx.id, actor_id,
            from_status=previous, to_status=target, trigger="release",
        )]

    def _check_payments_fit(self, tx: TransactionModel) -> None:
        attributed = sum((p.amount for p in tx.payments), ZERO)
        if attributed > tx.net_amount:
            raise PaymentExceedsNetAmountError(
                transaction_id=tx.id,
                attributed_total=attributed,
                net_amount=tx.net_amount,
            )

    # =========================================================================
    # Creation
    # =========================================================================

    def create_transaction(
        self,
        command: CreateTransaction | Mapping[str, Any],
    ) -> WorkflowResult:
        """
        Create an expense or income in DRAFT with approval NOT_REQUIRED.

        Raises:
            InvalidPayloadError: Malformed payload.
            InvalidAmountError: Non-positive base, rate outside the
                configured allow-lists, withholding without a rate.
            CapabilityDeniedError: Actor lacks ``<module>:create``.
        """
        if not isinstance(command, CreateTransaction):
            command = CreateTransaction.from_payload(command)
        profile = profile_for(command.transaction_type)

        with self._unit_of_work(
            "create_transaction",
            actor_id=command.actor_id, company_id=command.company_id,
        ):
            require_capability(
                self._capabilities, command.actor_id, command.company_id,
                profile.capability("create"),
            )
            wht_rate = self._withholding_rate(
                command.is_withholding_applicable,
                command.withholding_rate_percent,
                command.withholding_category,
            )
            totals = self._tax.totals(command.base_amount, command.vat_rate_percent, wht_rate)

            model_cls = _MODEL_FOR_TYPE[command.transaction_type]
            tx = model_cls(
                company_id=command.company_id,
                counterparty_ref=command.counterparty_ref,
                description=command.description,
                is_withholding_applicable=command.is_withholding_applicable,
                has_tax_document=command.has_tax_document,
                has_withholding_certificate=command.has_withholding_certificate,
                document_type=command.document_type.value if command.document_type else None,
                approval_status=ApprovalStatus.NOT_REQUIRED.value,
                document_workflow_status=profile.draft_state,
                created_at=self._clock.now(),
                created_by_id=command.actor_id,
            )
            _apply_totals(tx, totals, self._tax.validate_vat_rate(command.vat_rate_percent), wht_rate)
            self._session.add(tx)
            self._session.flush()

            logger.info("transaction_created", extra={
                "transaction_id": str(tx.id),
                "transaction_type": tx.transaction_type,
                "net_amount": str(tx.net_amount),
            })
            return WorkflowResult(
                transaction=tx.to_dto(),
                events=(WorkflowEvent.audit(
                    EventAction.TRANSACTION_CREATED, tx.id, command.actor_id,
                    transaction_type=tx.transaction_type,
                    base_amount=str(tx.base_amount),
                    net_amount=str(tx.net_amount),
                ),),
            )

    # =========================================================================
    # Approval
    # =========================================================================

    def submit_transaction(self, transaction_id: UUID, actor_id: UUID) -> WorkflowResult:
        """
        Submit a DRAFT record.

        Actors holding ``<module>:create-direct`` skip approval: approval
        stays NOT_REQUIRED and the document workflow is released at once.
        Everyone else puts the record in PENDING and every other approver
        is notified.

        Raises:
            InvalidTransitionError: Record is not DRAFT, or already PENDING.
        """
        with self._unit_of_work(
            "submit_transaction", actor_id=actor_id, transaction_id=transaction_id,
        ):
            tx = self._lock(transaction_id)
            profile = self._require(actor_id, tx, "create")
            if tx.document_workflow_status != profile.draft_state:
                raise InvalidTransitionError(
                    entity=profile.workflow.name,
                    current_state=tx.document_workflow_status,
                    requested="submit",
                    rule="only DRAFT records can be submitted",
                )

            direct = self._capabilities.has_capability(
                actor_id, tx.company_id, profile.capability("create-direct"),
            )
            event = ApprovalEvent.SUBMIT_DIRECT if direct else ApprovalEvent.SUBMIT_FOR_APPROVAL
            previous = tx.approval_status
            tx.approval_status = apply_approval_event(previous, event).value
            tx.submitted_at = self._clock.now()
            tx.submitted_by = actor_id
            tx.rejection_reason = None
            tx.updated_by_id = actor_id

            events: list[WorkflowEvent] = []
            if direct:
                events.append(WorkflowEvent.audit(
                    EventAction.SUBMITTED_DIRECT, tx.id, actor_id,
                    from_approval=previous, to_approval=tx.approval_status,
                ))
                events.extend(self._release(tx, profile, actor_id))
            else:
                approvers = [
                    a for a in self._capabilities.actors_with_capability(
                        tx.company_id, profile.capability("approve"),
                    )
                    if a != actor_id
                ]
                events.append(WorkflowEvent.audit(
                    EventAction.SUBMITTED_FOR_APPROVAL, tx.id, actor_id,
                    from_approval=previous, to_approval=tx.approval_status,
                ))
                events.append(WorkflowEvent.notify(
                    EventAction.SUBMITTED_FOR_APPROVAL, tx.id, actor_id, approvers,
                    transaction_type=tx.transaction_type,
                    net_amount=str(tx.net_amount),
                ))
            self._session.flush()

            logger.info("transaction_submitted", extra={
                "approval_status": tx.approval_status,
                "document_status": tx.document_workflow_status,
                "direct": direct,
            })
            return WorkflowResult(transaction=tx.to_dto(), events=tuple(events))

    def withdraw_submission(self, transaction_id: UUID, actor_id: UUID) -> WorkflowResult:
        """Pull a PENDING record back to NOT_REQUIRED / DRAFT.

        Only the submitter or the creator may withdraw.
        """
        with self._unit_of_work(
            "withdraw_submission", actor_id=actor_id, transaction_id=transaction_id,
        ):
            tx = self._lock(transaction_id)
            profile = self._require(actor_id, tx, "create")
            if actor_id not in (tx.submitted_by, tx.created_by_id):
                raise InvalidTransitionError(
                    entity="approval",
                    current_state=tx.approval_status,
                    requested=ApprovalEvent.WITHDRAW.value,
                    rule="only the submitter or the creator can withdraw a submission",
                )
            previous = tx.approval_status
            tx.approval_status = apply_approval_event(previous, ApprovalEvent.WITHDRAW).value
            tx.submitted_at = None
            tx.submitted_by = None
            tx.updated_by_id = actor_id
            self._session.flush()

            logger.info("submission_withdrawn", extra={"workflow": profile.workflow.name})
            return WorkflowResult(
                transaction=tx.to_dto(),
                events=(WorkflowEvent.audit(
                    EventAction.SUBMISSION_WITHDRAWN, tx.id, actor_id,
                    from_approval=previous, to_approval=tx.approval_status,
                ),),
            )

    def _decide(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        decision: ApprovalDecision,
        reason: str | None,
    ) -> WorkflowResult:
        tx = self._lock(transaction_id)
        profile = self._require(actor_id, tx, "approve")
        previous = tx.approval_status
        target = apply_approval_event(previous, decision.event)
        if tx.submitted_by == actor_id:
            raise SelfApprovalForbiddenError(tx.id, actor_id)

        now = self._clock.now()
        tx.approval_status = target.value
        tx.updated_by_id = actor_id
        events: list[WorkflowEvent] = []
        if decision is ApprovalDecision.APPROVE:
            tx.approved_at = now
            tx.approved_by = actor_id
            action = EventAction.APPROVED
        else:
            tx.rejected_at = now
            tx.rejected_by = actor_id
            tx.rejection_reason = reason
            action = EventAction.REJECTED

        events.append(WorkflowEvent.audit(
            action, tx.id, actor_id,
            from_approval=previous, to_approval=tx.approval_status, reason=reason,
        ))
        events.append(WorkflowEvent.notify(
            action, tx.id, actor_id,
            [u for u in (tx.submitted_by, tx.created_by_id) if u != actor_id],
            reason=reason,
        ))
        if decision is ApprovalDecision.APPROVE:
            events.extend(self._release(tx, profile, actor_id))
        self._session.flush()

        logger.info("approval_decided", extra={
            "decision": decision.value,
            "approval_status": tx.approval_status,
            "document_status": tx.document_workflow_status,
        })
        return WorkflowResult(transaction=tx.to_dto(), events=tuple(events))

    def decide_approval(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        decision: ApprovalDecision | str,
        reason: str | None = None,
    ) -> WorkflowResult:
        """
        Approve or reject a PENDING record.

        Approval releases the document workflow; rejection needs a reason
        and leaves the record in DRAFT for resubmission.

        Raises:
            InvalidTransitionError: Record is not PENDING.
            SelfApprovalForbiddenError: Actor submitted the record.
            InvalidPayloadError: Rejection without a reason.
        """
        try:
            decision = ApprovalDecision(decision)
        except ValueError as exc:
            raise InvalidPayloadError("decision", "must be APPROVE or REJECT") from exc
        if decision is ApprovalDecision.REJECT:
            reason = require_reason(reason)

        with self._unit_of_work(
            "decide_approval", actor_id=actor_id, transaction_id=transaction_id,
        ):
            return self._decide(transaction_id, actor_id, decision, reason)

    def batch_approve(
        self,
        transaction_ids: Sequence[UUID],
        actor_id: UUID,
    ) -> BatchApprovalResult:
        """Approve many records, each committed on its own.

        Records that cannot be approved are reported SKIPPED with the error
        code; they do not affect the others.
        """
        ids = list(dict.fromkeys(transaction_ids))
        if not ids:
            raise InvalidPayloadError("transaction_ids", "at least one id is required")
        limit = self._config.approval.max_batch_size
        if len(ids) > limit:
            raise InvalidPayloadError(
                "transaction_ids", f"at most {limit} ids per batch, got {len(ids)}",
            )

        outcomes: list[BatchItemOutcome] = []
        events: list[WorkflowEvent] = []
        for tx_id in ids:
            with LogContext.bind(actor_id=actor_id, transaction_id=tx_id):
                try:
                    result = self._decide(tx_id, actor_id, ApprovalDecision.APPROVE, None)
                    self._session.commit()
                except BillTrackError as exc:
                    self._session.rollback()
                    outcomes.append(BatchItemOutcome(
                        item_id=tx_id,
                        status=BatchItemStatus.SKIPPED,
                        reason_code=exc.code,
                        message=exc.message,
                    ))
                    logger.warning("batch_approve_item_skipped", extra={"reason_code": exc.code})
                    continue
                except Exception:
                    self._session.rollback()
                    raise
            outcomes.append(BatchItemOutcome(item_id=tx_id, status=BatchItemStatus.SUCCEEDED))
            events.extend(result.events)

        approved = sum(1 for o in outcomes if o.succeeded)
        logger.info("batch_approve_completed", extra={
            "approved": approved,
            "skipped": len(outcomes) - approved,
        })
        return BatchApprovalResult(outcomes=tuple(outcomes), events=tuple(events))

    # =========================================================================
    # Document workflow
    # =========================================================================

    def update_document_flags(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        update: DocumentFlagsUpdate | Mapping[str, Any],
    ) -> WorkflowResult:
        """
        Change document flags and keep the status consistent with them.

        An ``explicit_status`` is applied verbatim.  Otherwise the status is
        re-derived when ``has_tax_document`` or ``is_withholding_applicable``
        actually changed, then self-healed.  DRAFT records stay DRAFT.

        Raises:
            InvalidTransitionError: Record is SENT_TO_ACCOUNTANT or
                COMPLETED; explicit status on a DRAFT record; unknown
                explicit status.
            InvalidAmountError: Withholding turned on without a rate, or a
                rate outside the allow-list.
            PaymentExceedsNetAmountError: New net below attributed payments.
        """
        if not isinstance(update, DocumentFlagsUpdate):
            update = DocumentFlagsUpdate.from_payload(update)
        if update.is_empty:
            raise InvalidPayloadError("update", "no changes supplied")

        with self._unit_of_work(
            "update_document_flags", actor_id=actor_id, transaction_id=transaction_id,
        ):
            tx = self._lock(transaction_id)
            profile = self._require(actor_id, tx, "update")
            ensure_flags_mutable(profile, tx.document_workflow_status)
            is_draft = tx.document_workflow_status == profile.draft_state
            if is_draft and update.explicit_status is not None:
                raise InvalidTransitionError(
                    entity=profile.workflow.name,
                    current_state=tx.document_workflow_status,
                    requested=f"set status {update.explicit_status}",
                    rule="an explicit status can only be set after release",
                )

            before = _flags_of(tx)
            if update.has_tax_document is not None:
                tx.has_tax_document = update.has_tax_document
            if update.has_withholding_certificate is not None:
                tx.has_withholding_certificate = update.has_withholding_certificate
            if update.is_withholding_applicable is not None:
                tx.is_withholding_applicable = update.is_withholding_applicable

            if update.withholding_rate_percent is not None and not tx.is_withholding_applicable:
                raise InvalidAmountError(
                    "withholding_rate_percent", update.withholding_rate_percent,
                    "must be empty when withholding does not apply",
                )
            wht_rate = self._withholding_rate(
                tx.is_withholding_applicable,
                update.withholding_rate_percent
                if update.withholding_rate_percent is not None
                else tx.withholding_rate_percent,
            )
            totals = self._tax.totals(tx.base_amount, tx.vat_rate_percent, wht_rate)
            _apply_totals(tx, totals, tx.vat_rate_percent, wht_rate)
            self._check_payments_fit(tx)

            after = _flags_of(tx)
            previous_status = tx.document_workflow_status
            drivers_changed = (
                before.has_tax_document != after.has_tax_document
                or before.is_withholding_applicable != after.is_withholding_applicable
            )
            if is_draft:
                status = previous_status
            elif update.explicit_status is not None:
                status = derive_status(profile, after, update.explicit_status)
            else:
                status = derive_status(profile, after) if drivers_changed else previous_status
                status = repair_status(profile, status, after)
            tx.document_workflow_status = status
            tx.updated_by_id = actor_id
            self._session.flush()

            changes = {
                name: getattr(update, name)
                for name in (
                    "has_tax_document",
                    "is_withholding_applicable",
                    "withholding_rate_percent",
                    "has_withholding_certificate",
                    "explicit_status",
                )
                if getattr(update, name) is not None
            }
            events = [WorkflowEvent.audit(
                EventAction.TRANSACTION_UPDATED, tx.id, actor_id,
                changes={k: str(v) for k, v in changes.items()},
                net_amount=str(tx.net_amount),
            )]
            if status != previous_status:
                events.append(WorkflowEvent.audit(
                    EventAction.DOCUMENT_STATUS_CHANGED, tx.id, actor_id,
                    from_status=previous_status,
                    to_status=status,
                    trigger="explicit" if update.explicit_status else "derived",
                ))
            logger.info("document_flags_updated", extra={
                "from_status": previous_status,
                "to_status": status,
                "explicit": update.explicit_status is not None,
            })
            return WorkflowResult(transaction=tx.to_dto(), events=tuple(events))

    def revise_amounts(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        base_amount: Decimal | int | str,
        vat_rate_percent: Decimal | int | str | None = None,
    ) -> WorkflowResult:
        """Change the base amount (and optionally the VAT rate) and recompute."""
        base = parse_amount("base_amount", base_amount)
        if base <= ZERO:
            raise InvalidAmountError("base_amount", base, "must be greater than zero")

        with self._unit_of_work(
            "revise_amounts", actor_id=actor_id, transaction_id=transaction_id,
        ):
            tx = self._lock(transaction_id)
            profile = self._require(actor_id, tx, "update")
            if tx.document_workflow_status in profile.locked_states:
                raise InvalidTransitionError(
                    entity=profile.workflow.name,
                    current_state=tx.document_workflow_status,
                    requested="revise amounts",
                    rule="amounts are locked once sent to the accountant",
                )
            vat_rate = self._tax.validate_vat_rate(
                vat_rate_percent if vat_rate_percent is not None else tx.vat_rate_percent,
            )
            previous_net = tx.net_amount
            totals = self._tax.totals(base, vat_rate, tx.withholding_rate_percent)
            _apply_totals(tx, totals, vat_rate, tx.withholding_rate_percent)
            self._check_payments_fit(tx)
            tx.updated_by_id = actor_id
            self._session.flush()

            logger.info("amounts_revised", extra={
                "base_amount": str(tx.base_amount),
                "from_net_amount": str(previous_net),
                "to_net_amount": str(tx.net_amount),
            })
            return WorkflowResult(
                transaction=tx.to_dto(),
                events=(WorkflowEvent.audit(
                    EventAction.TRANSACTION_UPDATED, tx.id, actor_id,
                    changes={"base_amount": str(tx.base_amount),
                             "vat_rate_percent": str(vat_rate)},
                    from_net_amount=str(previous_net),
                    net_amount=str(tx.net_amount),
                ),),
            )

    def advance_document(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        action: str,
    ) -> WorkflowResult:
        """
        Fire a document action such as ``receive_tax_document`` or
        ``send_to_accountant``; the flags the transition names are set.

        Raises:
            InvalidTransitionError: No transition for (status, action), or
                the action is ``release`` (records leave DRAFT only through
                submission or approval).
        """
        with self._unit_of_work(
            "advance_document", actor_id=actor_id, transaction_id=transaction_id,
        ):
            tx = self._lock(transaction_id)
            profile = self._require(actor_id, tx, "update")
            previous = tx.document_workflow_status
            if previous == profile.draft_state:
                raise InvalidTransitionError(
                    entity=profile.workflow.name,
                    current_state=previous,
                    requested=action,
                    rule="records leave DRAFT through submission or approval",
                )
            transition = next_transition(profile, previous, action, _flags_of(tx))
            for flag in transition.sets_flags:
                setattr(tx, flag, True)
            tx.document_workflow_status = transition.to_state
            tx.updated_by_id = actor_id
            self._session.flush()

            logger.info("document_status_changed", extra={
                "from_status": previous,
                "to_status": transition.to_state,
                "trigger": action,
            })
            return WorkflowResult(
                transaction=tx.to_dto(),
                events=(WorkflowEvent.audit(
                    EventAction.DOCUMENT_STATUS_CHANGED, tx.id, actor_id,
                    from_status=previous, to_status=transition.to_state, trigger=action,
                ),),
            )

    def delete_transaction(self, transaction_id: UUID, actor_id: UUID) -> WorkflowResult:
        """Soft delete.  Payment rows stay; pending ones drop out of reports."""
        with self._unit_of_work(
            "delete_transaction", actor_id=actor_id, transaction_id=transaction_id,
        ):
            tx = self._lock(transaction_id)
            self._require(actor_id, tx, "update")
            tx.deleted_at = self._clock.now()
            tx.deleted_by = actor_id
            tx.updated_by_id = actor_id
            self._session.flush()

            logger.info("transaction_deleted", extra={"payments": len(tx.payments)})
            return WorkflowResult(
                transaction=tx.to_dto(),
                events=(WorkflowEvent.audit(
                    EventAction.TRANSACTION_DELETED, tx.id, actor_id,
                    approval_status=tx.approval_status,
                    document_status=tx.document_workflow_status,
                ),),
            )

    def repair_workflow_statuses(self, company_id: UUID, actor_id: UUID) -> RepairReport:
        """Self-heal every live record of a company.  Safe to re-run."""
        with self._unit_of_work("repair_workflow_statuses", actor_id=actor_id, company_id=company_id):
            rows = self._session.execute(
                select(TransactionModel)
                .where(*company_transactions(company_id))
                .order_by(TransactionModel.created_at)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()

            repairs: list[StatusRepair] = []
            events: list[WorkflowEvent] = []
            for tx in rows:
                profile = profile_for(tx.transaction_type)
                status = repair_status(profile, tx.document_workflow_status, _flags_of(tx))
                if status == tx.document_workflow_status:
                    continue
                require_capability(
                    self._capabilities, actor_id, company_id, profile.capability("update"),
                )
                repairs.append(StatusRepair(tx.id, tx.document_workflow_status, status))
                events.append(WorkflowEvent.audit(
                    EventAction.DOCUMENT_STATUS_REPAIRED, tx.id, actor_id,
                    from_status=tx.document_workflow_status, to_status=status,
                ))
                tx.document_workflow_status = status
                tx.updated_by_id = actor_id
            self._session.flush()

            logger.info("workflow_statuses_repaired", extra={
                "scanned": len(rows),
                "repaired": len(repairs),
            })
            return RepairReport(repairs=tuple(repairs), events=tuple(events))

    # =========================================================================
    # Settlement (delegated to the ledger)
    # =========================================================================

    def attach_payments(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        attributions: Sequence[PaymentAttributionInput | Mapping[str, Any]],
    ) -> PaymentsResult:
        with self._unit_of_work(
            "attach_payments", actor_id=actor_id, transaction_id=transaction_id,
        ):
            return self._ledger.attach(transaction_id, actor_id, attributions)

    def replace_payments(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        attributions: Sequence[PaymentAttributionInput | Mapping[str, Any]],
    ) -> PaymentsResult:
        with self._unit_of_work(
            "replace_payments", actor_id=actor_id, transaction_id=transaction_id,
        ):
            return self._ledger.replace(transaction_id, actor_id, attributions)

    def remove_payments(self, payment_ids: Sequence[UUID], actor_id: UUID) -> PaymentsResult:
        with self._unit_of_work("remove_payments", actor_id=actor_id):
            return self._ledger.remove(payment_ids, actor_id)

    def change_payer_type(
        self,
        payment_id: UUID,
        actor_id: UUID,
        payer_type: PayerType | str,
        payer_ref: UUID | None = None,
        payer_name: str | None = None,
    ) -> PaymentResult:
        with self._unit_of_work("change_payer_type", actor_id=actor_id, payment_id=payment_id):
            return self._ledger.change_payer_type(
                payment_id, actor_id, payer_type, payer_ref, payer_name,
            )

    def settle_payment(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reference: str | None = None,
        attachments: Sequence[str] = (),
    ) -> PaymentResult:
        with self._unit_of_work("settle_payment", actor_id=actor_id, payment_id=payment_id):
            return self._ledger.settle(payment_id, actor_id, reference, attachments)

    def reverse_payment(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reason: str | None,
    ) -> PaymentResult:
        with self._unit_of_work("reverse_payment", actor_id=actor_id, payment_id=payment_id):
            return self._ledger.reverse(payment_id, actor_id, reason)

    def batch_settle(
        self,
        payment_ids: Sequence[UUID],
        actor_id: UUID,
        options: BatchSettleOptions | Mapping[str, Any] | None = None,
    ) -> BatchSettleResult:
        if options is not None and not isinstance(options, BatchSettleOptions):
            options = BatchSettleOptions.from_payload(options)
        with self._unit_of_work("batch_settle", actor_id=actor_id):
            return self._ledger.batch_settle(payment_ids, actor_id, options)

    # =========================================================================
    # Pure tax helpers
    # =========================================================================

    def compute_totals(
        self,
        base: Decimal | int | str,
        vat_rate_percent: Decimal | int | str,
        withholding_rate_percent: Decimal | int | str | None = None,
    ) -> TransactionTotals:
        return self._tax.totals(base, vat_rate_percent, withholding_rate_percent)

    def summarize(self, expenses: Sequence[Any], incomes: Sequence[Any]) -> TaxSummary:
        return self._tax.summarize(expenses, incomes)
