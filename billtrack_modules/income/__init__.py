"""
Income Module (``billtrack_modules.income``).

Declares the income document workflow (invoice issuance and collection of
the customer's withholding certificate).
"""

from billtrack_modules.income.workflows import INCOME_DOCUMENT_WORKFLOW, INCOME_PROFILE

__all__ = ["INCOME_DOCUMENT_WORKFLOW", "INCOME_PROFILE"]
