"""
BillTrack modules.

Per-transaction-type workflow definitions (expense, income) and the
payment attribution and settlement ledger.
"""

from billtrack_kernel.domain.document import DocumentWorkflowProfile, TransactionType
from billtrack_modules.expense.workflows import EXPENSE_PROFILE
from billtrack_modules.income.workflows import INCOME_PROFILE

WORKFLOW_PROFILES: dict[TransactionType, DocumentWorkflowProfile] = {
    TransactionType.EXPENSE: EXPENSE_PROFILE,
    TransactionType.INCOME: INCOME_PROFILE,
}


def profile_for(transaction_type: TransactionType | str) -> DocumentWorkflowProfile:
    """Workflow profile of a transaction type."""
    return WORKFLOW_PROFILES[TransactionType(transaction_type)]


__all__ = ["WORKFLOW_PROFILES", "profile_for"]
