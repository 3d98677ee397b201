"""
Money helpers shared by the tax engine, the ledger and the orchestrator.

Amounts are ``Decimal`` end to end.  ``to_decimal`` is the entry point for
caller-supplied numbers and refuses floats; ``round2`` (round-half-up to two
places) is the one place monetary values are rounded.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Amount or rate as an unrounded, finite Decimal.

    Raises:
        TypeError: float, bool or any non-numeric type.
        ValueError: a string that does not parse as a number, or NaN/Infinity.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary value")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Invalid decimal string: {value!r}") from exc
    else:
        raise TypeError(
            f"Monetary values must be Decimal, int or str, got {type(value).__name__}"
        )
    if not result.is_finite():
        raise ValueError(f"Monetary values must be finite, got {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    exponent = Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=rounding)


def round2(value: Decimal) -> Decimal:
    """Half-up to cents: 0.005 -> 0.01, 2.675 -> 2.68."""
    return round_money(value, MONEY_DECIMAL_PLACES)
