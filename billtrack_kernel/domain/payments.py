"""
Payment attribution domain types (``billtrack_kernel.domain.payments``).

Who funded an expense, and whether that funding must be paid back.
Settlement status is never chosen by a caller; it is a function of the
payer type, recomputed whenever the payer type changes.
"""

from __future__ import annotations

from enum import Enum


class PayerType(str, Enum):
    ENTITY = "ENTITY"
    PETTY_CASH_FUND = "PETTY_CASH_FUND"
    INDIVIDUAL = "INDIVIDUAL"


class SettlementStatus(str, Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    PENDING = "PENDING"
    SETTLED = "SETTLED"


# Moves the ledger may make.  NOT_REQUIRED has no outgoing edge.
SETTLEMENT_TRANSITIONS: dict[SettlementStatus, frozenset[SettlementStatus]] = {
    SettlementStatus.PENDING: frozenset({SettlementStatus.SETTLED}),
    SettlementStatus.SETTLED: frozenset({SettlementStatus.PENDING}),
    SettlementStatus.NOT_REQUIRED: frozenset(),
}


def settlement_status_for(payer_type: PayerType | str) -> SettlementStatus:
    """Initial settlement status implied by ``payer_type``.

    Only an individual who fronted their own money is owed reimbursement.
    """
    if PayerType(payer_type) is PayerType.INDIVIDUAL:
        return SettlementStatus.PENDING
    return SettlementStatus.NOT_REQUIRED
