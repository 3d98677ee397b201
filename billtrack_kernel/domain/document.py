"""
Document workflow domain types (``billtrack_kernel.domain.document``).

Responsibility
--------------
Status vocabularies for the expense and income document workflows, the
document flags that drive status derivation, and the profile object that
tells the derivation engine which status plays which role for a given
transaction type.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  The concrete
profiles (with their transition tables) live in ``billtrack_modules.expense``
and ``billtrack_modules.income``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from billtrack_kernel.domain.workflow import Workflow


class TransactionType(str, Enum):
    """Concrete transaction variants."""

    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class DocumentType(str, Enum):
    """Kind of supporting document an expense is expected to carry."""

    TAX_INVOICE = "TAX_INVOICE"
    CASH_RECEIPT = "CASH_RECEIPT"
    NO_DOCUMENT = "NO_DOCUMENT"


class ExpenseWorkflowStatus(str, Enum):
    DRAFT = "DRAFT"
    WAITING_TAX_DOCUMENT = "WAITING_TAX_DOCUMENT"
    WITHHOLDING_PENDING_ISSUE = "WITHHOLDING_PENDING_ISSUE"
    WITHHOLDING_ISSUED = "WITHHOLDING_ISSUED"
    WITHHOLDING_SENT_TO_COUNTERPARTY = "WITHHOLDING_SENT_TO_COUNTERPARTY"
    READY_FOR_ACCOUNTING = "READY_FOR_ACCOUNTING"
    SENT_TO_ACCOUNTANT = "SENT_TO_ACCOUNTANT"
    COMPLETED = "COMPLETED"


class IncomeWorkflowStatus(str, Enum):
    DRAFT = "DRAFT"
    WAITING_INVOICE_ISSUE = "WAITING_INVOICE_ISSUE"
    WITHHOLDING_PENDING_CERTIFICATE = "WITHHOLDING_PENDING_CERTIFICATE"
    WITHHOLDING_CERTIFICATE_RECEIVED = "WITHHOLDING_CERTIFICATE_RECEIVED"
    READY_FOR_ACCOUNTING = "READY_FOR_ACCOUNTING"
    SENT_TO_ACCOUNTANT = "SENT_TO_ACCOUNTANT"
    COMPLETED = "COMPLETED"


DRAFT_STATUS = "DRAFT"


@dataclass(frozen=True)
class DocumentFlags:
    """Flag values the derivation rule reads.

    ``document_type`` is only meaningful for expenses; incomes leave it None.
    """

    has_tax_document: bool
    is_withholding_applicable: bool
    has_withholding_certificate: bool = False
    document_type: DocumentType | None = None


@dataclass(frozen=True)
class DocumentWorkflowProfile:
    """Role assignment of a workflow's statuses for one transaction type.

    Contract
    --------
    * ``wait_state`` is where a record sits while its tax document (expense)
      or invoice (income) is outstanding.
    * ``withholding_branch`` is ordered; its first element is the entry state
      that derivation targets when withholding applies.
    * ``locked_states`` reject document-flag changes.
    * ``document_not_required`` lists document types that count as already
      holding their tax document.
    """

    transaction_type: TransactionType
    workflow: Workflow
    capability_module: str
    wait_state: str
    withholding_branch: tuple[str, ...]
    ready_state: str
    locked_states: tuple[str, ...]
    document_not_required: frozenset[DocumentType] = frozenset()

    @property
    def withholding_entry_state(self) -> str:
        return self.withholding_branch[0]

    @property
    def draft_state(self) -> str:
        return self.workflow.initial_state

    def is_valid_status(self, status: str) -> bool:
        return status in self.workflow.states

    def capability(self, action: str) -> str:
        """Capability string for ``action`` in this type's module."""
        return f"{self.capability_module}:{action}"
