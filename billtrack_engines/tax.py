"""
Tax Engine - VAT, withholding tax and net settlement amounts.

Pure functions with no I/O.  Every monetary result passes through
``round2`` (round-half-up to two places), the single rounding point, and
every value is a ``Decimal``; floats are refused.

The same ``compute_transaction_totals`` serves expenses and incomes.  The
caller decides whether ``net_amount`` means "net paid" (expense: what the
company hands the vendor after withholding) or "net received" (income: what
the customer hands the company after withholding).

Usage:
    from decimal import Decimal
    from billtrack_engines.tax import compute_transaction_totals, summarize_vat

    totals = compute_transaction_totals(Decimal("1000"), Decimal("7"), Decimal("3"))
    print(totals.net_amount)  # 1040.00

    summary = summarize_vat(
        expenses=[{"vat_amount": Decimal("70")}],
        incomes=[{"vat_amount": Decimal("140")}],
    )
    print(summary.net_vat)  # 70.00 -> the company remits 70
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from billtrack_kernel.db.types import ZERO, round2
from billtrack_kernel.domain.commands import parse_amount
from billtrack_kernel.exceptions import InvalidAmountError
from billtrack_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

HUNDRED = Decimal("100")

DEFAULT_VAT_RATES: frozenset[Decimal] = frozenset({Decimal("0"), Decimal("7")})
DEFAULT_WITHHOLDING_RATES: frozenset[Decimal] = frozenset(
    Decimal(r) for r in ("0", "1", "2", "3", "5", "10", "15")
)

# Default withholding rate per service category.
DEFAULT_WITHHOLDING_CATEGORIES: dict[str, Decimal] = {
    "SERVICE": Decimal("3"),
    "PROFESSIONAL": Decimal("5"),
    "TRANSPORT": Decimal("1"),
    "RENT": Decimal("5"),
    "ADVERTISING": Decimal("2"),
    "OTHER": Decimal("3"),
}


@dataclass(frozen=True)
class TransactionTotals:
    """Derived amounts of one transaction.

    ``vat_amount`` and ``withholding_amount`` are always Decimals here; the
    persistence layer stores NULL for a zero VAT rate and for withholding
    that does not apply.
    """

    base: Decimal
    vat_amount: Decimal
    withholding_amount: Decimal
    total_with_vat: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class VatSummary:
    """Input VAT is reclaimable, output VAT is owed.

    ``net_vat`` > 0: the company remits the difference; < 0: refund due.
    """

    input_vat: Decimal
    output_vat: Decimal
    net_vat: Decimal


@dataclass(frozen=True)
class WithholdingSummary:
    """``withheld_from_others`` must be remitted on the vendors' behalf;
    ``withheld_by_others`` is a credit the company can claim."""

    withheld_from_others: Decimal
    withheld_by_others: Decimal
    net_withholding: Decimal


@dataclass(frozen=True)
class TaxSummary:
    vat: VatSummary
    withholding: WithholdingSummary


# =============================================================================
# Validation
# =============================================================================


def _amount(field: str, value: Decimal | int | str) -> Decimal:
    amount = parse_amount(field, value)
    if amount < ZERO:
        raise InvalidAmountError(field, amount, "cannot be negative")
    return amount


def _rate(field: str, value: Decimal | int | str | None) -> Decimal:
    if value is None:
        return ZERO
    rate = parse_amount(field, value)
    if rate < ZERO:
        raise InvalidAmountError(field, rate, "rate cannot be negative")
    return rate


def validate_rate(
    field: str,
    rate: Decimal | int | str | None,
    allowed: Iterable[Decimal],
) -> Decimal:
    """Return ``rate`` as a Decimal if it is in ``allowed`` (None counts as 0)."""
    value = _rate(field, rate)
    allowed = frozenset(allowed)
    if value not in allowed:
        choices = ", ".join(f"{r.normalize():f}" for r in sorted(allowed))
        raise InvalidAmountError(field, value, f"allowed rates are {choices}")
    return value


# =============================================================================
# Single-transaction arithmetic
# =============================================================================


def compute_vat(base: Decimal | int | str, rate_percent: Decimal | int | str) -> Decimal:
    """``round2(base * rate / 100)``; a zero rate short-circuits to 0.00."""
    amount = _amount("base_amount", base)
    rate = _rate("vat_rate_percent", rate_percent)
    if rate == ZERO:
        return round2(ZERO)
    return round2(amount * rate / HUNDRED)


def compute_withholding(
    base: Decimal | int | str,
    rate_percent: Decimal | int | str | None,
) -> Decimal:
    """Same shape as :func:`compute_vat`, computed on the pre-VAT base."""
    amount = _amount("base_amount", base)
    rate = _rate("withholding_rate_percent", rate_percent)
    if rate == ZERO:
        return round2(ZERO)
    return round2(amount * rate / HUNDRED)


def compute_transaction_totals(
    base: Decimal | int | str,
    vat_rate_percent: Decimal | int | str,
    withholding_rate_percent: Decimal | int | str | None,
    *,
    vat_rates: Iterable[Decimal] = DEFAULT_VAT_RATES,
    withholding_rates: Iterable[Decimal] = DEFAULT_WITHHOLDING_RATES,
) -> TransactionTotals:
    """Base, VAT, withholding, total with VAT and net amount.

    ``total_with_vat = base + vat``; ``net_amount = total_with_vat - withholding``.

    Raises:
        InvalidAmountError: negative base, or a rate outside its allow-list.
    """
    amount = _amount("base_amount", base)
    vat_rate = validate_rate("vat_rate_percent", vat_rate_percent, vat_rates)
    wht_rate = validate_rate(
        "withholding_rate_percent", withholding_rate_percent, withholding_rates
    )

    vat = compute_vat(amount, vat_rate)
    withholding = compute_withholding(amount, wht_rate)
    total_with_vat = round2(amount + vat)
    return TransactionTotals(
        base=round2(amount),
        vat_amount=vat,
        withholding_amount=withholding,
        total_with_vat=total_with_vat,
        net_amount=total_with_vat - withholding,
    )


def reverse_vat(
    total_with_vat: Decimal | int | str,
    rate_percent: Decimal | int | str,
) -> Decimal:
    """Recover the pre-VAT base from a VAT-inclusive total."""
    total = _amount("total_with_vat", total_with_vat)
    rate = _rate("vat_rate_percent", rate_percent)
    if rate == ZERO:
        return round2(total)
    return round2(total / (1 + rate / HUNDRED))


def withholding_rate_for_category(
    category: str,
    categories: Mapping[str, Decimal] = DEFAULT_WITHHOLDING_CATEGORIES,
) -> Decimal:
    """Default withholding rate for a service category (case-insensitive)."""
    key = category.strip().upper()
    if key not in categories:
        raise InvalidAmountError(
            "withholding_category", category,
            "unknown category; known: " + ", ".join(sorted(categories)),
        )
    return categories[key]


# =============================================================================
# Period summaries
# =============================================================================


def _field_of(item: Any, name: str) -> Decimal:
    value = item.get(name) if isinstance(item, Mapping) else getattr(item, name, None)
    if value is None:
        return ZERO
    return parse_amount(name, value)


def _total(items: Iterable[Any], name: str) -> Decimal:
    return round2(sum((_field_of(item, name) for item in items), ZERO))


def summarize_vat(expenses: Iterable[Any], incomes: Iterable[Any]) -> VatSummary:
    """Input VAT from expenses, output VAT from incomes.  Nulls count as 0.

    Items are mappings or objects exposing ``vat_amount``.
    """
    input_vat = _total(expenses, "vat_amount")
    output_vat = _total(incomes, "vat_amount")
    return VatSummary(
        input_vat=input_vat,
        output_vat=output_vat,
        net_vat=output_vat - input_vat,
    )


def summarize_withholding(
    expenses: Iterable[Any],
    incomes: Iterable[Any],
) -> WithholdingSummary:
    """Withholding deducted from vendors versus withheld by customers."""
    from_others = _total(expenses, "withholding_amount")
    by_others = _total(incomes, "withholding_amount")
    return WithholdingSummary(
        withheld_from_others=from_others,
        withheld_by_others=by_others,
        net_withholding=from_others - by_others,
    )


def summarize(expenses: Iterable[Any], incomes: Iterable[Any]) -> TaxSummary:
    expenses = list(expenses)
    incomes = list(incomes)
    return TaxSummary(
        vat=summarize_vat(expenses, incomes),
        withholding=summarize_withholding(expenses, incomes),
    )


# =============================================================================
# Configured calculator
# =============================================================================


class TaxCalculator:
    """
    The tax functions bound to a company's configured rate allow-lists.

    Contract:
        Stateless apart from the allow-lists; safe to share across threads.
    """

    def __init__(
        self,
        vat_rates: Iterable[Decimal] = DEFAULT_VAT_RATES,
        withholding_rates: Iterable[Decimal] = DEFAULT_WITHHOLDING_RATES,
        withholding_categories: Mapping[str, Decimal] | None = None,
    ):
        self.vat_rates = frozenset(vat_rates)
        self.withholding_rates = frozenset(withholding_rates)
        self.withholding_categories = dict(
            withholding_categories
            if withholding_categories is not None
            else DEFAULT_WITHHOLDING_CATEGORIES
        )

    def totals(
        self,
        base: Decimal | int | str,
        vat_rate_percent: Decimal | int | str,
        withholding_rate_percent: Decimal | int | str | None,
    ) -> TransactionTotals:
        t0 = time.monotonic()
        result = compute_transaction_totals(
            base,
            vat_rate_percent,
            withholding_rate_percent,
            vat_rates=self.vat_rates,
            withholding_rates=self.withholding_rates,
        )
        logger.debug("transaction_totals_computed", extra={
            "base": result.base,
            "vat_amount": result.vat_amount,
            "withholding_amount": result.withholding_amount,
            "net_amount": result.net_amount,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    def validate_vat_rate(self, rate: Decimal | int | str | None) -> Decimal:
        return validate_rate("vat_rate_percent", rate, self.vat_rates)

    def validate_withholding_rate(self, rate: Decimal | int | str | None) -> Decimal:
        return validate_rate("withholding_rate_percent", rate, self.withholding_rates)

    def rate_for_category(self, category: str) -> Decimal:
        return withholding_rate_for_category(category, self.withholding_categories)

    def summarize(self, expenses: Iterable[Any], incomes: Iterable[Any]) -> TaxSummary:
        result = summarize(expenses, incomes)
        logger.debug("tax_summary_computed", extra={
            "net_vat": result.vat.net_vat,
            "net_withholding": result.withholding.net_withholding,
        })
        return result
