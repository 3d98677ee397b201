"""
Module: billtrack_engines
Responsibility:
    Pure calculation engines: tax arithmetic and document-workflow
    derivation.  Canonical import surface for billtrack_modules and
    billtrack_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import billtrack_kernel domain types, db.types and exceptions.
    MUST NOT import billtrack_services or billtrack_modules.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic; floats are refused.
    - Determinism: identical inputs always produce identical outputs.
"""

from billtrack_engines.document_workflow import (
    derive_status,
    effective_path,
    ensure_flags_mutable,
    needs_repair,
    next_transition,
    repair_status,
)
from billtrack_engines.tax import (
    TaxCalculator,
    TaxSummary,
    TransactionTotals,
    VatSummary,
    WithholdingSummary,
    compute_transaction_totals,
    compute_vat,
    compute_withholding,
    reverse_vat,
    summarize,
    summarize_vat,
    summarize_withholding,
)

__all__ = [
    "TaxCalculator",
    "TaxSummary",
    "TransactionTotals",
    "VatSummary",
    "WithholdingSummary",
    "compute_transaction_totals",
    "compute_vat",
    "compute_withholding",
    "derive_status",
    "effective_path",
    "ensure_flags_mutable",
    "needs_repair",
    "next_transition",
    "repair_status",
    "reverse_vat",
    "summarize",
    "summarize_vat",
    "summarize_withholding",
]
