"""Read-only query selectors."""

from billtrack_kernel.selectors.base import BaseSelector
from billtrack_kernel.selectors.settlement_selector import (
    MonthlySettlementSummary,
    PersonSettlementSummary,
    SettlementReport,
    SettlementSelector,
)
from billtrack_kernel.selectors.transaction_selector import (
    DocumentBacklog,
    TransactionSelector,
)

__all__ = [
    "BaseSelector",
    "DocumentBacklog",
    "MonthlySettlementSummary",
    "PersonSettlementSummary",
    "SettlementReport",
    "SettlementSelector",
    "TransactionSelector",
]
