"""Amounts are integers in minor units; only presentation divides by 100."""
from decimal import Decimal, ROUND_CEILING
from typing import Iterable

from .validators import ensure_positive_int


def line_amount(price: int, shipping_price: int) -> int:
    return ensure_positive_int(price, "price") + ensure_positive_int(shipping_price, "shipping_price")


def application_fee(amounts: Iterable[int], percentage: Decimal) -> int:
    total = sum(ensure_positive_int(a, "amount") for a in amounts)
    fee = (Decimal(total) * Decimal(str(percentage))).to_integral_value(rounding=ROUND_CEILING)
    return int(fee)