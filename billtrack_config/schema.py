"""
Configuration schema (``billtrack_config.schema``).

Frozen dataclasses parsed from YAML.  Each validates itself in
``__post_init__`` and raises ``ValueError`` with a descriptive message; no
silent defaults are invented for malformed values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class TaxPolicy:
    """Rate allow-lists and the default withholding rate per category."""

    vat_rates: frozenset[Decimal]
    withholding_rates: frozenset[Decimal]
    withholding_categories: dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        if not self.vat_rates:
            raise ValueError("tax.vat_rates cannot be empty")
        if not self.withholding_rates:
            raise ValueError("tax.withholding_rates cannot be empty")
        for rate in self.vat_rates | self.withholding_rates:
            if rate < 0 or rate > 100:
                raise ValueError(f"rate {rate} must be between 0 and 100")
        if Decimal("0") not in self.vat_rates:
            raise ValueError("tax.vat_rates must include 0")
        for category, rate in self.withholding_categories.items():
            if rate not in self.withholding_rates:
                raise ValueError(
                    f"withholding category {category} uses rate {rate} "
                    "outside tax.withholding_rates"
                )


@dataclass(frozen=True)
class ApprovalPolicy:
    max_batch_size: int = 50

    def __post_init__(self):
        if self.max_batch_size < 1:
            raise ValueError("approval.max_batch_size must be at least 1")


@dataclass(frozen=True)
class SettlementPolicy:
    max_batch_size: int = 50
    payout_description_prefix: str = "Reimbursement payout"

    def __post_init__(self):
        if self.max_batch_size < 1:
            raise ValueError("settlement.max_batch_size must be at least 1")
        if not self.payout_description_prefix.strip():
            raise ValueError("settlement.payout_description_prefix cannot be empty")


@dataclass(frozen=True)
class EngineConfig:
    config_id: str
    version: int
    tax: TaxPolicy
    approval: ApprovalPolicy
    settlement: SettlementPolicy
    checksum: str = ""
