from decimal import Decimal

import pytest

from voucherpos.money import MoneyError, format_amount, from_minor_units, line_amounts, to_minor_units


@pytest.mark.parametrize(
    "value, exponent, expected",
    [
        ("1,500", 0, 1500),
        (1500, 0, 1500),
        ("12.5", 2, 1250),
        (Decimal("3.105"), 2, 311),
        (5, 2, 500),
        ("0.5", 0, 1),
    ],
)
def test_to_minor_units(value, exponent, expected):
    assert to_minor_units(value, exponent) == expected


@pytest.mark.parametrize("value", [None, "", "abc", True, "NaN"])
def test_to_minor_units_rejects(value):
    with pytest.raises(MoneyError):
        to_minor_units(value, 0)


def test_format_and_from_minor_units():
    assert format_amount(150000, 0, "MMK") == "MMK 150,000"
    assert format_amount(1250, 2, "USD") == "USD 12.50"
    assert from_minor_units(1250, 2) == Decimal("12.50")


def test_line_amounts():
    assert line_amounts(100, 150, 3) == (300, 450, 150)
    assert line_amounts(200, 150, 2) == (400, 300, -100)
