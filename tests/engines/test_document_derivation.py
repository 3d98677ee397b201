"""
Tests for the Document Workflow Engine.

Covers:
- Status derivation from document flags (expense and income)
- Explicit status overrides
- Self-heal of inconsistent statuses
- Table-driven transitions and guards
- Effective paths
"""

import pytest

from billtrack_engines.document_workflow import (
    derive_status,
    effective_path,
    ensure_flags_mutable,
    has_required_document,
    needs_repair,
    next_transition,
    repair_status,
)
from billtrack_kernel.domain.document import DocumentFlags, DocumentType
from billtrack_kernel.domain.workflow import Transition, Workflow
from billtrack_kernel.exceptions import InvalidTransitionError
from billtrack_modules import profile_for
from billtrack_modules.expense.workflows import EXPENSE_PROFILE
from billtrack_modules.income.workflows import INCOME_PROFILE


def flags(doc=False, wht=False, cert=False, doc_type=None):
    return DocumentFlags(
        has_tax_document=doc,
        is_withholding_applicable=wht,
        has_withholding_certificate=cert,
        document_type=doc_type,
    )


class TestDeriveStatus:
    """Tests for derive_status."""

    def test_expense_waits_for_tax_document(self):
        assert derive_status(EXPENSE_PROFILE, flags()) == "WAITING_TAX_DOCUMENT"

    def test_expense_document_present_without_withholding(self):
        assert derive_status(EXPENSE_PROFILE, flags(doc=True)) == "READY_FOR_ACCOUNTING"

    def test_expense_document_present_with_withholding(self):
        assert derive_status(EXPENSE_PROFILE, flags(doc=True, wht=True)) == "WITHHOLDING_PENDING_ISSUE"

    def test_missing_document_wins_over_withholding(self):
        """The tax document is collected before the withholding branch."""
        assert derive_status(EXPENSE_PROFILE, flags(wht=True)) == "WAITING_TAX_DOCUMENT"

    def test_no_document_type_skips_wait(self):
        """NO_DOCUMENT expenses never wait for a tax invoice."""
        status = derive_status(EXPENSE_PROFILE, flags(doc_type=DocumentType.NO_DOCUMENT))
        assert status == "READY_FOR_ACCOUNTING"

    def test_cash_receipt_skips_wait(self):
        """A cash receipt is the whole paper trail; no tax invoice follows."""
        status = derive_status(EXPENSE_PROFILE, flags(doc_type=DocumentType.CASH_RECEIPT))
        assert status == "READY_FOR_ACCOUNTING"

    def test_tax_invoice_waits(self):
        status = derive_status(EXPENSE_PROFILE, flags(doc_type=DocumentType.TAX_INVOICE))
        assert status == "WAITING_TAX_DOCUMENT"

    def test_income_waits_for_invoice(self):
        assert derive_status(INCOME_PROFILE, flags()) == "WAITING_INVOICE_ISSUE"

    def test_income_with_withholding(self):
        assert derive_status(INCOME_PROFILE, flags(doc=True, wht=True)) == "WITHHOLDING_PENDING_CERTIFICATE"

    def test_income_ready(self):
        assert derive_status(INCOME_PROFILE, flags(doc=True)) == "READY_FOR_ACCOUNTING"

    def test_explicit_status_used_verbatim(self):
        """An explicit status is returned even if the flags disagree."""
        status = derive_status(EXPENSE_PROFILE, flags(), explicit_status="SENT_TO_ACCOUNTANT")
        assert status == "SENT_TO_ACCOUNTANT"

    def test_explicit_status_of_other_workflow_rejected(self):
        with pytest.raises(InvalidTransitionError, match="unknown status"):
            derive_status(INCOME_PROFILE, flags(), explicit_status="WAITING_TAX_DOCUMENT")

    def test_explicit_draft_rejected(self):
        with pytest.raises(InvalidTransitionError, match="cannot be returned to DRAFT"):
            derive_status(EXPENSE_PROFILE, flags(), explicit_status="DRAFT")


class TestRepairStatus:
    """Tests for self-heal."""

    def test_withholding_branch_without_withholding(self):
        """A withholding status with withholding switched off heals to READY."""
        healed = repair_status(EXPENSE_PROFILE, "WITHHOLDING_ISSUED", flags(doc=True))
        assert healed == "READY_FOR_ACCOUNTING"

    def test_wait_state_with_document_present(self):
        healed = repair_status(EXPENSE_PROFILE, "WAITING_TAX_DOCUMENT", flags(doc=True, wht=True))
        assert healed == "WITHHOLDING_PENDING_ISSUE"

    def test_wait_state_for_no_document_expense(self):
        healed = repair_status(
            EXPENSE_PROFILE, "WAITING_TAX_DOCUMENT", flags(doc_type=DocumentType.NO_DOCUMENT)
        )
        assert healed == "READY_FOR_ACCOUNTING"

    def test_wait_state_for_cash_receipt_with_withholding(self):
        healed = repair_status(
            EXPENSE_PROFILE, "WAITING_TAX_DOCUMENT",
            flags(doc_type=DocumentType.CASH_RECEIPT, wht=True),
        )
        assert healed == "WITHHOLDING_PENDING_ISSUE"
        assert repair_status(
            EXPENSE_PROFILE, healed, flags(doc_type=DocumentType.CASH_RECEIPT, wht=True),
        ) == healed

    def test_income_certificate_branch_heals(self):
        healed = repair_status(INCOME_PROFILE, "WITHHOLDING_PENDING_CERTIFICATE", flags(doc=True))
        assert healed == "READY_FOR_ACCOUNTING"

    def test_consistent_status_unchanged(self):
        assert repair_status(EXPENSE_PROFILE, "WITHHOLDING_ISSUED", flags(doc=True, wht=True)) == (
            "WITHHOLDING_ISSUED"
        )

    def test_draft_and_locked_never_repaired(self):
        assert not needs_repair(EXPENSE_PROFILE, "DRAFT", flags(doc=True))
        assert not needs_repair(EXPENSE_PROFILE, "SENT_TO_ACCOUNTANT", flags())
        assert not needs_repair(EXPENSE_PROFILE, "COMPLETED", flags())

    @pytest.mark.parametrize("status", [
        "WAITING_TAX_DOCUMENT",
        "WITHHOLDING_PENDING_ISSUE",
        "WITHHOLDING_ISSUED",
        "WITHHOLDING_SENT_TO_COUNTERPARTY",
        "READY_FOR_ACCOUNTING",
    ])
    @pytest.mark.parametrize("doc,wht", [(False, False), (True, False), (False, True), (True, True)])
    def test_repair_is_idempotent(self, status, doc, wht):
        """Healing twice gives the same result as healing once."""
        once = repair_status(EXPENSE_PROFILE, status, flags(doc=doc, wht=wht))
        assert repair_status(EXPENSE_PROFILE, once, flags(doc=doc, wht=wht)) == once


class TestLockedStates:
    """Tests for ensure_flags_mutable."""

    def test_open_states_are_mutable(self):
        ensure_flags_mutable(EXPENSE_PROFILE, "WAITING_TAX_DOCUMENT")
        ensure_flags_mutable(INCOME_PROFILE, "READY_FOR_ACCOUNTING")

    @pytest.mark.parametrize("status", ["SENT_TO_ACCOUNTANT", "COMPLETED"])
    def test_locked_states_refuse(self, status):
        with pytest.raises(InvalidTransitionError, match="locked"):
            ensure_flags_mutable(EXPENSE_PROFILE, status)


class TestNextTransition:
    """Tests for table-driven transitions."""

    def test_receive_document_with_withholding(self):
        t = next_transition(EXPENSE_PROFILE, "WAITING_TAX_DOCUMENT", "receive_tax_document", flags(wht=True))
        assert t.to_state == "WITHHOLDING_PENDING_ISSUE"
        assert t.sets_flags == ("has_tax_document",)

    def test_receive_document_without_withholding(self):
        t = next_transition(EXPENSE_PROFILE, "WAITING_TAX_DOCUMENT", "receive_tax_document", flags())
        assert t.to_state == "READY_FOR_ACCOUNTING"

    def test_certificate_issue_sets_flag(self):
        t = next_transition(
            EXPENSE_PROFILE, "WITHHOLDING_PENDING_ISSUE", "issue_withholding_certificate",
            flags(doc=True, wht=True),
        )
        assert t.to_state == "WITHHOLDING_ISSUED"
        assert t.sets_flags == ("has_withholding_certificate",)

    def test_income_issue_invoice(self):
        t = next_transition(INCOME_PROFILE, "WAITING_INVOICE_ISSUE", "issue_invoice", flags(wht=True))
        assert t.to_state == "WITHHOLDING_PENDING_CERTIFICATE"

    def test_unknown_action_lists_available(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            next_transition(EXPENSE_PROFILE, "READY_FOR_ACCOUNTING", "complete", flags(doc=True))
        assert exc_info.value.rule == "available actions: send_to_accountant"

    def test_terminal_state_has_no_actions(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            next_transition(EXPENSE_PROFILE, "COMPLETED", "send_to_accountant", flags(doc=True))
        assert exc_info.value.rule == "available actions: none"


class TestEffectivePath:
    """Tests for effective_path."""

    def test_expense_full_path(self):
        path = effective_path(EXPENSE_PROFILE, flags(wht=True))
        assert path == (
            "DRAFT",
            "WAITING_TAX_DOCUMENT",
            "WITHHOLDING_PENDING_ISSUE",
            "WITHHOLDING_ISSUED",
            "WITHHOLDING_SENT_TO_COUNTERPARTY",
            "SENT_TO_ACCOUNTANT",
            "COMPLETED",
        )

    def test_expense_no_document_no_withholding(self):
        path = effective_path(EXPENSE_PROFILE, flags(doc_type=DocumentType.NO_DOCUMENT))
        assert path == ("DRAFT", "READY_FOR_ACCOUNTING", "SENT_TO_ACCOUNTANT", "COMPLETED")

    def test_expense_cash_receipt_with_withholding(self):
        path = effective_path(EXPENSE_PROFILE, flags(doc_type=DocumentType.CASH_RECEIPT, wht=True))
        assert path == (
            "DRAFT",
            "WITHHOLDING_PENDING_ISSUE",
            "WITHHOLDING_ISSUED",
            "WITHHOLDING_SENT_TO_COUNTERPARTY",
            "SENT_TO_ACCOUNTANT",
            "COMPLETED",
        )

    def test_income_with_withholding(self):
        path = effective_path(INCOME_PROFILE, flags(wht=True))
        assert path == (
            "DRAFT",
            "WAITING_INVOICE_ISSUE",
            "WITHHOLDING_PENDING_CERTIFICATE",
            "WITHHOLDING_CERTIFICATE_RECEIVED",
            "SENT_TO_ACCOUNTANT",
            "COMPLETED",
        )


class TestProfiles:
    """Tests for the profile registry."""

    def test_profile_lookup_by_string(self):
        assert profile_for("EXPENSE") is EXPENSE_PROFILE
        assert profile_for("INCOME") is INCOME_PROFILE

    def test_capability_names(self):
        assert EXPENSE_PROFILE.capability("approve") == "expenses:approve"
        assert INCOME_PROFILE.capability("create") == "incomes:create"

    def test_has_required_document(self):
        assert has_required_document(EXPENSE_PROFILE, flags(doc=True))
        assert not has_required_document(INCOME_PROFILE, flags(doc_type=DocumentType.NO_DOCUMENT))


class TestWorkflowTable:
    """Malformed tables fail at construction."""

    def _workflow(self, transitions, initial="A", terminal=()):
        return Workflow(
            name="demo",
            description="demo",
            initial_state=initial,
            states=("A", "B", "C"),
            transitions=tuple(transitions),
            terminal_states=terminal,
        )

    def test_valid_table(self):
        wf = self._workflow([
            Transition("A", "B", "go"),
            Transition("A", "C", "skip"),
            Transition("A", "C", "go"),
        ])
        assert wf.actions_from("A") == ("go", "skip")
        assert [t.to_state for t in wf.transitions_from("A")] == ["B", "C", "C"]
        assert wf.actions_from("C") == ()

    def test_undeclared_initial_state(self):
        with pytest.raises(ValueError, match="initial state Z is not declared"):
            self._workflow([], initial="Z")

    def test_undeclared_endpoint(self):
        with pytest.raises(ValueError, match="go uses undeclared Z"):
            self._workflow([Transition("A", "Z", "go")])

    def test_transition_out_of_terminal_state(self):
        with pytest.raises(ValueError, match="reopen leaves terminal state C"):
            self._workflow([Transition("C", "A", "reopen")], terminal=("C",))
