# Overview: Currency helpers; converts between display amounts and integer minor units.

"""
All monetary values are stored and computed as integer minor units of the
configured currency (CURRENCY_EXPONENT decimal places). Line totals are
price * quantity on integers and sale totals are plain integer sums, so
there is no rounding drift across items. Rounding happens once, half-up,
when a decimal amount enters the system.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from flask import current_app, has_app_context


class MoneyError(ValueError):
    """Raised when an amount cannot be interpreted."""


def currency_exponent() -> int:
    if has_app_context():
        return int(current_app.config.get("CURRENCY_EXPONENT", 0))
    return 0


def currency_code() -> str:
    if has_app_context():
        return current_app.config.get("CURRENCY_CODE", "MMK")
    return "MMK"


def to_minor_units(value: Any, exponent: int | None = None) -> int:
    """
    Convert a display amount ("1,500", 12.5, Decimal("3.10")) to minor units.

    Integers are taken as whole display units, so with exponent 2 the
    value 5 becomes 500.
    """
    if exponent is None:
        exponent = currency_exponent()
    if value is None or isinstance(value, bool):
        raise MoneyError("amount is required")

    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            raise MoneyError("amount is required")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise MoneyError(f"invalid amount: {value!r}")

    if not amount.is_finite():
        raise MoneyError(f"invalid amount: {value!r}")

    scaled = (amount * (Decimal(10) ** exponent)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(scaled)


def from_minor_units(minor: int, exponent: int | None = None) -> Decimal:
    if exponent is None:
        exponent = currency_exponent()
    return (Decimal(minor) / (Decimal(10) ** exponent)).quantize(Decimal(1).scaleb(-exponent))


def format_amount(minor: int, exponent: int | None = None, code: str | None = None) -> str:
    """Human display, e.g. format_amount(150000) -> 'MMK 150,000'."""
    if exponent is None:
        exponent = currency_exponent()
    if code is None:
        code = currency_code()
    value = from_minor_units(minor, exponent)
    return f"{code} {value:,.{exponent}f}"


def line_amounts(cost_price: int, sale_price: int, quantity: int) -> tuple[int, int, int]:
    """(total_cost, total_sale, profit) for one line."""
    total_cost = cost_price * quantity
    total_sale = sale_price * quantity
    return total_cost, total_sale, total_sale - total_cost
