"""Payment attribution and reimbursement settlement."""

from billtrack_modules.settlement.service import (
    ATTRIBUTION_CAPABILITY,
    SETTLEMENT_CAPABILITY,
    SettlementLedger,
)

__all__ = ["ATTRIBUTION_CAPABILITY", "SETTLEMENT_CAPABILITY", "SettlementLedger"]
