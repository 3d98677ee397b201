"""
Tests for the settlement ledger (through the WorkflowOrchestrator).

Covers:
- Attaching, replacing and removing payment attributions
- Payer type and settlement status coupling
- Settle / reverse / re-settle with history
- Approval gate on settlement
- Batch settlement with per-row savepoints and payout expenses
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from billtrack_kernel.domain.approval import ApprovalStatus
from billtrack_kernel.domain.dtos import BatchItemStatus
from billtrack_kernel.domain.events import EventAction, EventKind
from billtrack_kernel.domain.payments import PayerType, SettlementStatus
from billtrack_kernel.exceptions import (
    AlreadySettledError,
    ApprovalRequiredError,
    CapabilityDeniedError,
    InvalidPayloadError,
    InvalidTransitionError,
    PaymentExceedsNetAmountError,
    PaymentNotFoundError,
)
from billtrack_kernel.selectors import SettlementSelector, TransactionSelector


@pytest.fixture
def fund(orchestrator, roster):
    """Factory: attach attribution rows to an expense, return the created rows."""

    def _fund(tx, *rows):
        return orchestrator.attach_payments(tx.id, roster.clerk, list(rows)).payments

    return _fund


def individual(payer_ref, amount, name=None):
    row = {"payer_type": "INDIVIDUAL", "payer_ref": payer_ref, "amount": amount}
    if name:
        row["payer_name"] = name
    return row


def entity(amount):
    return {"payer_type": "ENTITY", "amount": amount}


class TestAttachPayments:
    """Tests for attaching attributions."""

    def test_status_follows_payer_type(self, roster, approved_expense, fund):
        tx = approved_expense()
        personal, company, petty = fund(
            tx,
            individual(roster.clerk, "600"),
            entity("300"),
            {"payer_type": "PETTY_CASH_FUND", "amount": "170"},
        )

        assert personal.settlement_status is SettlementStatus.PENDING
        assert company.settlement_status is SettlementStatus.NOT_REQUIRED
        assert petty.settlement_status is SettlementStatus.NOT_REQUIRED
        assert personal.amount == Decimal("600.00")

    def test_total_cannot_exceed_net(self, roster, approved_expense, fund):
        tx = approved_expense()
        fund(tx, entity("1000"))

        with pytest.raises(PaymentExceedsNetAmountError) as exc_info:
            fund(tx, individual(roster.clerk, "70.01"))
        assert exc_info.value.attributed_total == Decimal("1070.01")

    def test_exactly_net_is_allowed(self, roster, approved_expense, fund):
        tx = approved_expense()
        rows = fund(tx, entity("1000"), individual(roster.clerk, "70"))
        assert len(rows) == 2

    def test_attach_before_approval(self, roster, pending_expense, fund):
        tx = pending_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        assert row.settlement_status is SettlementStatus.PENDING

    def test_income_rejected(self, orchestrator, roster, create_income):
        tx = create_income()
        with pytest.raises(InvalidPayloadError, match="only be attached to expenses"):
            orchestrator.attach_payments(tx.id, roster.clerk, [entity("10")])

    def test_empty_list_rejected(self, orchestrator, roster, approved_expense):
        tx = approved_expense()
        with pytest.raises(InvalidPayloadError):
            orchestrator.attach_payments(tx.id, roster.clerk, [])

    def test_individual_without_ref_rejected(self, orchestrator, roster, approved_expense):
        tx = approved_expense()
        with pytest.raises(InvalidPayloadError, match="payer_ref"):
            orchestrator.attach_payments(tx.id, roster.clerk, [
                {"payer_type": "INDIVIDUAL", "amount": "10"},
            ])

    def test_attach_event(self, orchestrator, roster, approved_expense):
        tx = approved_expense()
        result = orchestrator.attach_payments(tx.id, roster.clerk, [entity("10")])
        (event,) = result.events
        assert event.action is EventAction.PAYMENTS_ATTACHED
        assert event.payload["payment_ids"] == [str(result.payments[0].id)]


class TestSettle:
    """Tests for settle_payment."""

    def test_settle_pending_row(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "600"))

        result = orchestrator.settle_payment(
            row.id, roster.finance, reference="TRF-001", attachments=["slip.pdf"],
        )

        settled = result.payment
        assert settled.settlement_status is SettlementStatus.SETTLED
        assert settled.settled_by == roster.finance
        assert settled.settlement_reference == "TRF-001"
        assert settled.settlement_attachments == ("slip.pdf",)
        notify = [e for e in result.events if e.kind is EventKind.NOTIFY]
        assert notify[0].target_user_ids == (roster.clerk,)

    def test_settle_direct_submission(self, orchestrator, roster, create_expense, fund):
        """NOT_REQUIRED approval is settleable."""
        tx = create_expense(actor_id=roster.direct_clerk)
        orchestrator.submit_transaction(tx.id, roster.direct_clerk)
        (row,) = fund(tx, individual(roster.direct_clerk, "50"))

        result = orchestrator.settle_payment(row.id, roster.finance)
        assert result.payment.settlement_status is SettlementStatus.SETTLED

    def test_pending_approval_blocks_settlement(self, orchestrator, roster, pending_expense, fund):
        tx = pending_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))

        with pytest.raises(ApprovalRequiredError) as exc_info:
            orchestrator.settle_payment(row.id, roster.finance)
        assert exc_info.value.approval_status == ApprovalStatus.PENDING.value

    def test_rejected_blocks_settlement(self, orchestrator, roster, pending_expense, fund):
        tx = pending_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.decide_approval(tx.id, roster.approver, "REJECT", "wrong vendor")

        with pytest.raises(ApprovalRequiredError):
            orchestrator.settle_payment(row.id, roster.finance)

    def test_double_settle(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.settle_payment(row.id, roster.finance)

        with pytest.raises(AlreadySettledError) as exc_info:
            orchestrator.settle_payment(row.id, roster.finance)
        assert exc_info.value.settled_by == roster.finance

    def test_entity_row_needs_no_settlement(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, entity("100"))

        with pytest.raises(InvalidTransitionError, match="need no reimbursement"):
            orchestrator.settle_payment(row.id, roster.finance)

    def test_clerk_cannot_settle(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))

        with pytest.raises(CapabilityDeniedError) as exc_info:
            orchestrator.settle_payment(row.id, roster.clerk)
        assert exc_info.value.capability == "settlements:manage"

    def test_unknown_payment(self, orchestrator, roster):
        with pytest.raises(PaymentNotFoundError):
            orchestrator.settle_payment(uuid4(), roster.finance)

    def test_deleted_transaction_hides_payment(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.delete_transaction(tx.id, roster.clerk)

        with pytest.raises(PaymentNotFoundError) as exc_info:
            orchestrator.settle_payment(row.id, roster.finance)
        assert exc_info.value.deleted is True


class TestReverse:
    """Tests for reverse_payment and re-settlement."""

    def test_reverse_keeps_settlement_metadata(self, orchestrator, roster, approved_expense, fund,
                                               deterministic_clock):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.settle_payment(row.id, roster.finance, reference="TRF-9")
        deterministic_clock.advance(60)

        result = orchestrator.reverse_payment(row.id, roster.finance, "paid to wrong account")

        reversed_row = result.payment
        assert reversed_row.settlement_status is SettlementStatus.PENDING
        assert reversed_row.settlement_reference == "TRF-9"
        assert reversed_row.settled_by == roster.finance
        assert reversed_row.reversal_reason == "paid to wrong account"
        assert reversed_row.reversed_by == roster.finance
        assert [e.action for e in result.events] == [
            EventAction.PAYMENT_REVERSED, EventAction.PAYMENT_REVERSED,
        ]

    def test_reverse_requires_reason(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.settle_payment(row.id, roster.finance)

        with pytest.raises(InvalidPayloadError):
            orchestrator.reverse_payment(row.id, roster.finance, "")

    def test_reverse_pending_row(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))

        with pytest.raises(InvalidTransitionError, match="only SETTLED"):
            orchestrator.reverse_payment(row.id, roster.finance, "mistake")

    def test_resettle_keeps_history(self, orchestrator, roster, session, approved_expense, fund,
                                    deterministic_clock):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.settle_payment(row.id, roster.finance, reference="first")
        deterministic_clock.advance(60)
        orchestrator.reverse_payment(row.id, roster.finance, "bounced")
        deterministic_clock.advance(60)

        again = orchestrator.settle_payment(row.id, roster.finance, reference="second")

        assert again.payment.settlement_status is SettlementStatus.SETTLED
        assert again.payment.reversed_at is None
        history = SettlementSelector(session).history(row.id)
        assert [h.reference for h in history] == ["first", "second"]
        assert history[0].is_reversed
        assert history[0].reversal_reason == "bounced"
        assert not history[1].is_reversed


class TestMaintainAttributions:
    """Tests for remove, replace and change_payer_type."""

    def test_remove_unsettled(self, orchestrator, roster, session, approved_expense, fund):
        tx = approved_expense()
        first, second = fund(tx, individual(roster.clerk, "100"), entity("50"))

        result = orchestrator.remove_payments([first.id], roster.clerk)

        assert [p.id for p in result.payments] == [first.id]
        remaining = SettlementSelector(session).payments_for(tx.id)
        assert [p.id for p in remaining] == [second.id]

    def test_remove_is_all_or_nothing(self, orchestrator, roster, session, approved_expense, fund):
        tx = approved_expense()
        settled, open_row = fund(tx, individual(roster.clerk, "100"), individual(roster.clerk, "50"))
        orchestrator.settle_payment(settled.id, roster.finance)

        with pytest.raises(AlreadySettledError):
            orchestrator.remove_payments([open_row.id, settled.id], roster.clerk)

        assert len(SettlementSelector(session).payments_for(tx.id)) == 2

    def test_replace_keeps_settled_rows(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        settled, _ = fund(tx, individual(roster.clerk, "600"), entity("470"))
        orchestrator.settle_payment(settled.id, roster.finance)

        result = orchestrator.replace_payments(tx.id, roster.clerk, [individual(roster.approver, "400")])

        by_status = {p.settlement_status: p for p in result.payments}
        assert len(result.payments) == 2
        assert by_status[SettlementStatus.SETTLED].id == settled.id
        assert by_status[SettlementStatus.PENDING].payer_ref == roster.approver
        assert [e.action for e in result.events] == [
            EventAction.PAYMENTS_REMOVED, EventAction.PAYMENTS_ATTACHED,
        ]

    def test_replace_counts_settled_rows_against_net(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        settled, _ = fund(tx, individual(roster.clerk, "600"), entity("470"))
        orchestrator.settle_payment(settled.id, roster.finance)

        with pytest.raises(PaymentExceedsNetAmountError):
            orchestrator.replace_payments(tx.id, roster.clerk, [entity("500")])

    def test_replace_keeps_reversed_rows_and_history(self, orchestrator, roster, session,
                                                     approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "600"))
        orchestrator.settle_payment(row.id, roster.finance, reference="first")
        orchestrator.reverse_payment(row.id, roster.finance, "bounced")

        result = orchestrator.replace_payments(tx.id, roster.clerk, [entity("400")])

        assert row.id in [p.id for p in result.payments]
        assert len(result.payments) == 2
        assert result.events[0].action is EventAction.PAYMENTS_ATTACHED
        history = SettlementSelector(session).history(row.id)
        assert [h.reference for h in history] == ["first"]
        assert history[0].reversal_reason == "bounced"

    def test_replace_counts_reversed_rows_against_net(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "600"))
        orchestrator.settle_payment(row.id, roster.finance)
        orchestrator.reverse_payment(row.id, roster.finance, "bounced")

        with pytest.raises(PaymentExceedsNetAmountError):
            orchestrator.replace_payments(tx.id, roster.clerk, [entity("500")])

    def test_reversed_row_cannot_be_removed(self, orchestrator, roster, session, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.settle_payment(row.id, roster.finance, reference="first")
        orchestrator.reverse_payment(row.id, roster.finance, "bounced")

        with pytest.raises(InvalidTransitionError, match="settlement history"):
            orchestrator.remove_payments([row.id], roster.clerk)

        selector = SettlementSelector(session)
        assert [p.id for p in selector.payments_for(tx.id)] == [row.id]
        assert len(selector.history(row.id)) == 1

    def test_change_to_entity_clears_reimbursement(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))

        result = orchestrator.change_payer_type(row.id, roster.clerk, "ENTITY")

        assert result.payment.payer_type is PayerType.ENTITY
        assert result.payment.settlement_status is SettlementStatus.NOT_REQUIRED
        assert result.events[0].payload["to_status"] == "NOT_REQUIRED"

    def test_change_to_individual(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, entity("100"))

        with pytest.raises(InvalidPayloadError, match="payer_ref"):
            orchestrator.change_payer_type(row.id, roster.clerk, "INDIVIDUAL")

        result = orchestrator.change_payer_type(
            row.id, roster.clerk, PayerType.INDIVIDUAL, payer_ref=roster.clerk,
        )
        assert result.payment.settlement_status is SettlementStatus.PENDING

    def test_settled_row_cannot_change(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))
        orchestrator.settle_payment(row.id, roster.finance)

        with pytest.raises(AlreadySettledError):
            orchestrator.change_payer_type(row.id, roster.clerk, "ENTITY")


class TestBatchSettle:
    """Tests for batch_settle."""

    def test_mixed_batch(self, orchestrator, roster, approved_expense, pending_expense, fund):
        tx_a = approved_expense()
        tx_b = approved_expense()
        carl_1, company_row = fund(tx_a, individual(roster.clerk, "100", "Carl Clerk"), entity("50"))
        (carl_2,) = fund(tx_b, individual(roster.clerk, "200", "Carl Clerk"))
        (alex,) = fund(tx_b, individual(roster.approver, "300", "Alex Approver"))
        (already,) = fund(tx_b, individual(roster.clerk, "10"))
        orchestrator.settle_payment(already.id, roster.finance)
        (unapproved,) = fund(pending_expense(), individual(roster.clerk, "20"))
        missing = uuid4()

        result = orchestrator.batch_settle(
            [carl_1.id, company_row.id, carl_2.id, already.id, alex.id, unapproved.id, missing],
            roster.finance,
            {"reference": "RUN-7"},
        )

        assert result.settled_ids == (carl_1.id, carl_2.id, alex.id)
        reasons = {o.item_id: o.reason_code for o in result.skipped}
        assert reasons == {
            company_row.id: "INVALID_TRANSITION",
            already.id: "ALREADY_SETTLED",
            unapproved.id: "APPROVAL_REQUIRED",
            missing: "NOT_FOUND",
        }
        assert result.created_transaction_ids == ()
        summary = result.events[-1]
        assert summary.action is EventAction.BATCH_SETTLED
        assert summary.transaction_id is None
        assert summary.payload["settled"] == 3
        assert summary.payload["skipped"] == 4

    def test_skipped_rows_do_not_undo_others(self, orchestrator, roster, session, approved_expense, fund):
        tx = approved_expense()
        good, bad = fund(tx, individual(roster.clerk, "100"), entity("50"))

        orchestrator.batch_settle([bad.id, good.id], roster.finance)

        rows = {p.id: p for p in SettlementSelector(session).payments_for(tx.id)}
        assert rows[good.id].settlement_status is SettlementStatus.SETTLED
        assert rows[bad.id].settlement_status is SettlementStatus.NOT_REQUIRED

    def test_payout_expense_per_payer(self, orchestrator, roster, session, approved_expense, fund):
        tx_a = approved_expense()
        tx_b = approved_expense()
        (carl_1,) = fund(tx_a, individual(roster.clerk, "100", "Carl Clerk"))
        (carl_2,) = fund(tx_b, individual(roster.clerk, "250.50", "Carl Clerk"))
        (alex,) = fund(tx_b, individual(roster.approver, "300", "Alex Approver"))

        result = orchestrator.batch_settle(
            [carl_1.id, carl_2.id, alex.id],
            roster.finance,
            {"reference": "RUN-8", "create_reimbursement_expenses": True},
        )

        assert len(result.created_transaction_ids) == 2
        selector = TransactionSelector(session)
        payouts = {p.counterparty_ref: p for p in (selector.get(i) for i in result.created_transaction_ids)}
        carl_payout = payouts["Carl Clerk"]
        assert carl_payout.net_amount == Decimal("350.50")
        assert carl_payout.vat_amount is None
        assert carl_payout.approval_status is ApprovalStatus.NOT_REQUIRED
        assert carl_payout.document_workflow_status == "COMPLETED"
        assert carl_payout.description == "Reimbursement payout: Carl Clerk (RUN-8)"
        assert payouts["Alex Approver"].net_amount == Decimal("300.00")

        settlements = SettlementSelector(session)
        (funding,) = settlements.payments_for(carl_payout.id)
        assert funding.payer_type is PayerType.ENTITY
        assert funding.settlement_status is SettlementStatus.NOT_REQUIRED
        linked = {p.id: p.payout_transaction_id for p in settlements.payments_for(tx_b.id)}
        assert linked[carl_2.id] == carl_payout.id
        created = [e for e in result.events if e.action is EventAction.REIMBURSEMENT_PAYOUT_CREATED]
        assert len(created) == 2

    def test_no_payout_when_nothing_settled(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, entity("50"))

        result = orchestrator.batch_settle(
            [row.id], roster.finance, {"create_reimbursement_expenses": True},
        )
        assert result.settled_ids == ()
        assert result.created_transaction_ids == ()

    def test_capability_denied_rows_skipped(self, orchestrator, roster, approved_expense, fund):
        tx = approved_expense()
        (row,) = fund(tx, individual(roster.clerk, "100"))

        result = orchestrator.batch_settle([row.id], roster.clerk)

        (outcome,) = result.outcomes
        assert outcome.status is BatchItemStatus.SKIPPED
        assert outcome.reason_code == "CAPABILITY_DENIED"

    def test_empty_and_oversized_batches(self, orchestrator, roster):
        with pytest.raises(InvalidPayloadError):
            orchestrator.batch_settle([], roster.finance)
        with pytest.raises(InvalidPayloadError, match="at most 50"):
            orchestrator.batch_settle([uuid4() for _ in range(51)], roster.finance)

    def test_unknown_option_rejected(self, orchestrator, roster):
        with pytest.raises(InvalidPayloadError):
            orchestrator.batch_settle([uuid4()], roster.finance, {"notify": True})
