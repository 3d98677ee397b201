"""Expense document workflow.

State machine for collecting an expense's tax invoice and issuing the
withholding certificate to the vendor before handover to the accountant.
"""

from billtrack_engines.document_workflow import (
    WITHHOLDING_APPLICABLE,
    WITHHOLDING_NOT_APPLICABLE,
)
from billtrack_kernel.domain.document import (
    DocumentType,
    DocumentWorkflowProfile,
    ExpenseWorkflowStatus as S,
    TransactionType,
)
from billtrack_kernel.domain.workflow import Transition, Workflow
from billtrack_kernel.logging_config import get_logger

logger = get_logger("modules.expense.workflows")


EXPENSE_DOCUMENT_WORKFLOW = Workflow(
    name="expense_document",
    description="Expense tax-document and withholding-certificate lifecycle",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    transitions=(
        # Release out of DRAFT happens on direct submission or approval;
        # the target is derived from the document flags.
        Transition(S.DRAFT.value, S.WAITING_TAX_DOCUMENT.value, action="release"),
        Transition(S.DRAFT.value, S.WITHHOLDING_PENDING_ISSUE.value, action="release"),
        Transition(S.DRAFT.value, S.READY_FOR_ACCOUNTING.value, action="release"),
        Transition(
            S.WAITING_TAX_DOCUMENT.value, S.WITHHOLDING_PENDING_ISSUE.value,
            action="receive_tax_document", guard=WITHHOLDING_APPLICABLE,
            sets_flags=("has_tax_document",),
        ),
        Transition(
            S.WAITING_TAX_DOCUMENT.value, S.READY_FOR_ACCOUNTING.value,
            action="receive_tax_document", guard=WITHHOLDING_NOT_APPLICABLE,
            sets_flags=("has_tax_document",),
        ),
        Transition(
            S.WITHHOLDING_PENDING_ISSUE.value, S.WITHHOLDING_ISSUED.value,
            action="issue_withholding_certificate",
            sets_flags=("has_withholding_certificate",),
        ),
        Transition(
            S.WITHHOLDING_ISSUED.value, S.WITHHOLDING_SENT_TO_COUNTERPARTY.value,
            action="send_withholding_certificate",
        ),
        Transition(
            S.WITHHOLDING_SENT_TO_COUNTERPARTY.value, S.SENT_TO_ACCOUNTANT.value,
            action="send_to_accountant",
        ),
        Transition(
            S.READY_FOR_ACCOUNTING.value, S.SENT_TO_ACCOUNTANT.value,
            action="send_to_accountant",
        ),
        Transition(S.SENT_TO_ACCOUNTANT.value, S.COMPLETED.value, action="complete"),
    ),
    terminal_states=(S.COMPLETED.value,),
)

EXPENSE_PROFILE = DocumentWorkflowProfile(
    transaction_type=TransactionType.EXPENSE,
    workflow=EXPENSE_DOCUMENT_WORKFLOW,
    capability_module="expenses",
    wait_state=S.WAITING_TAX_DOCUMENT.value,
    withholding_branch=(
        S.WITHHOLDING_PENDING_ISSUE.value,
        S.WITHHOLDING_ISSUED.value,
        S.WITHHOLDING_SENT_TO_COUNTERPARTY.value,
    ),
    ready_state=S.READY_FOR_ACCOUNTING.value,
    locked_states=(S.SENT_TO_ACCOUNTANT.value, S.COMPLETED.value),
    document_not_required=frozenset({DocumentType.NO_DOCUMENT, DocumentType.CASH_RECEIPT}),
)

logger.info(
    "expense_workflow_defined",
    extra={
        "workflow": EXPENSE_DOCUMENT_WORKFLOW.name,
        "states": len(EXPENSE_DOCUMENT_WORKFLOW.states),
        "transitions": len(EXPENSE_DOCUMENT_WORKFLOW.transitions),
    },
)
