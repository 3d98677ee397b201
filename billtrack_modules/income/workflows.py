"""Income document workflow.

State machine for issuing the customer invoice and collecting the
withholding certificate the customer owes before handover to the accountant.
"""

from billtrack_engines.document_workflow import (
    WITHHOLDING_APPLICABLE,
    WITHHOLDING_NOT_APPLICABLE,
)
from billtrack_kernel.domain.document import (
    DocumentWorkflowProfile,
    IncomeWorkflowStatus as S,
    TransactionType,
)
from billtrack_kernel.domain.workflow import Transition, Workflow
from billtrack_kernel.logging_config import get_logger

logger = get_logger("modules.income.workflows")


INCOME_DOCUMENT_WORKFLOW = Workflow(
    name="income_document",
    description="Income invoice and withholding-certificate lifecycle",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    transitions=(
        Transition(S.DRAFT.value, S.WAITING_INVOICE_ISSUE.value, action="release"),
        Transition(S.DRAFT.value, S.WITHHOLDING_PENDING_CERTIFICATE.value, action="release"),
        Transition(S.DRAFT.value, S.READY_FOR_ACCOUNTING.value, action="release"),
        Transition(
            S.WAITING_INVOICE_ISSUE.value, S.WITHHOLDING_PENDING_CERTIFICATE.value,
            action="issue_invoice", guard=WITHHOLDING_APPLICABLE,
            sets_flags=("has_tax_document",),
        ),
        Transition(
            S.WAITING_INVOICE_ISSUE.value, S.READY_FOR_ACCOUNTING.value,
            action="issue_invoice", guard=WITHHOLDING_NOT_APPLICABLE,
            sets_flags=("has_tax_document",),
        ),
        Transition(
            S.WITHHOLDING_PENDING_CERTIFICATE.value, S.WITHHOLDING_CERTIFICATE_RECEIVED.value,
            action="receive_withholding_certificate",
            sets_flags=("has_withholding_certificate",),
        ),
        Transition(
            S.WITHHOLDING_CERTIFICATE_RECEIVED.value, S.SENT_TO_ACCOUNTANT.value,
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

INCOME_PROFILE = DocumentWorkflowProfile(
    transaction_type=TransactionType.INCOME,
    workflow=INCOME_DOCUMENT_WORKFLOW,
    capability_module="incomes",
    wait_state=S.WAITING_INVOICE_ISSUE.value,
    withholding_branch=(
        S.WITHHOLDING_PENDING_CERTIFICATE.value,
        S.WITHHOLDING_CERTIFICATE_RECEIVED.value,
    ),
    ready_state=S.READY_FOR_ACCOUNTING.value,
    locked_states=(S.SENT_TO_ACCOUNTANT.value, S.COMPLETED.value),
)

logger.info(
    "income_workflow_defined",
    extra={
        "workflow": INCOME_DOCUMENT_WORKFLOW.name,
        "states": len(INCOME_DOCUMENT_WORKFLOW.states),
        "transitions": len(INCOME_DOCUMENT_WORKFLOW.transitions),
    },
)
