"""
Credit price table.

Maps a paid amount in whole rupees to the number of credits it buys.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict

CREDIT_PRICING: Dict[int, int] = {
    99: 10,
    249: 30,
    449: 55,
    699: 90,
}


def credits_for_amount(amount: Any) -> int:
    """
    Resolve how many credits a rupee amount buys.

    Accepts ints, integral floats and numeric strings ("249", 249.0).
    Anything else, or an amount missing from the table, buys nothing.
    """
    if amount is None or isinstance(amount, bool):
        return 0

    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        return 0

    if not value.is_finite() or value != value.to_integral_value():
        return 0

    return CREDIT_PRICING.get(int(value), 0)
