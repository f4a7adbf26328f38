"""
Decimal helpers for cost and margin arithmetic.

Rules:
- Costs, quantities and margins are always ``decimal.Decimal``; floats are
  rejected so binary rounding never leaks into persisted values.
- Rounding is half-even to ``settings.cost_decimal_places`` places and is
  applied only to values that get persisted, never to intermediate sums.
"""

from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Any

from shared.config.settings import settings

ZERO = Decimal("0")
COST_QUANTUM = Decimal(1).scaleb(-settings.cost_decimal_places)


def to_decimal(value: Any) -> Decimal:
    """
    Convert an int, str or Decimal to Decimal.

    Raises:
        TypeError: for floats and other unsupported types
        ValueError: for strings that are not numbers
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to convert {type(value).__name__} to Decimal")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a decimal number: {value!r}") from None
        if not result.is_finite():
            raise ValueError(f"Not a finite decimal number: {value!r}")
        return result
    raise TypeError(f"Unsupported type for Decimal: {type(value).__name__}")


def quantize(value: Decimal) -> Decimal:
    """Round a value to the persisted scale using half-even rounding."""
    return value.quantize(COST_QUANTUM, rounding=ROUND_HALF_EVEN)


def quantize_optional(value: Decimal | None) -> Decimal | None:
    """Like quantize, but passes None through."""
    if value is None:
        return None
    return quantize(value)


def decimals_equal(left: Decimal | None, right: Decimal | None) -> bool:
    """
    Decimal equality where two nulls are equal.

    ``Decimal("2.0") == Decimal("2.000000")`` so differences in stored
    scale never count as a change.
    """
    if left is None or right is None:
        return left is None and right is None
    return left == right


def effective_unit_cost(fifo_cost: Decimal | None, average_cost: Decimal | None) -> Decimal:
    """Unit cost used for recipe lines: FIFO, then weighted average, then zero."""
    if fifo_cost is not None:
        return fifo_cost
    if average_cost is not None:
        return average_cost
    return ZERO


def margin_for(base_price: Decimal, cost: Decimal) -> Decimal | None:
    """
    Margin as a fraction of the price, or None when the price is not positive.
    """
    if base_price <= ZERO:
        return None
    return quantize((base_price - cost) / base_price)
