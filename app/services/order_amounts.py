"""
Local-currency to USD amount conversion.

A fixed 3.5% fee is applied when converting a local amount into the USD order
total; the expected net payout applies a 1.75% deduction to the USD base.
These functions never raise: invalid inputs degrade to None / 0 and callers
are responsible for validation.
"""
import math
from typing import NamedTuple, Optional

FEE_MULTIPLIER = 1.035
PAYOUT_MULTIPLIER = 0.9825


class OrderAmounts(NamedTuple):
    base_amount: Optional[float]
    total_amount: float


def _is_number(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return not math.isnan(float(value))
    except (TypeError, ValueError):
        return False


def calculate_from_original_amount(original_amount, exchange_rate) -> OrderAmounts:
    """Convert a local-currency amount at `exchange_rate` (local units per USD)."""
    if not _is_number(original_amount) or not _is_number(exchange_rate) or float(exchange_rate) <= 0:
        return OrderAmounts(base_amount=None, total_amount=0)

    base_amount = float(original_amount) / float(exchange_rate)
    total_amount = round(base_amount * FEE_MULTIPLIER, 2)
    return OrderAmounts(base_amount=base_amount, total_amount=total_amount)


def calculate_payout_from_order(original_amount, exchange_rate, total_amount) -> float:
    """
    Expected net payout for an order. Prefers the local amount / rate pair and
    falls back to the fee-inclusive USD total when the local amount is unknown.
    """
    if (
        _is_number(original_amount)
        and float(original_amount) >= 0
        and _is_number(exchange_rate)
        and float(exchange_rate) > 0
    ):
        return float(original_amount) / float(exchange_rate) * PAYOUT_MULTIPLIER

    if not _is_number(total_amount):
        return 0.0
    return float(total_amount) * PAYOUT_MULTIPLIER

