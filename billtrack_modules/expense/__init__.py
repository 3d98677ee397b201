"""
Expense Module (``billtrack_modules.expense``).

Declares the expense document workflow (tax invoice collection and
withholding-certificate issuance) and the profile the derivation engine
uses to map flags onto it.
"""

from billtrack_modules.expense.workflows import EXPENSE_DOCUMENT_WORKFLOW, EXPENSE_PROFILE

__all__ = ["EXPENSE_DOCUMENT_WORKFLOW", "EXPENSE_PROFILE"]
