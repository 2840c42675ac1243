from decimal import Decimal

import pytest

from servicemarket.core.money import percentage_of
from servicemarket.core.money import quantize_money
from servicemarket.core.money import to_decimal


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("10", Decimal("10.00")),
        ("0.005", Decimal("0.01")),
        ("0.004", Decimal("0.00")),
        ("-0.005", Decimal("-0.01")),
        (3, Decimal("3.00")),
    ],
)
def test_quantize_money_rounds_half_up(value, expected):
    assert quantize_money(value) == expected


@pytest.mark.parametrize(
    ("amount", "rate", "expected"),
    [
        (Decimal("10000.00"), Decimal("10.00"), Decimal("1000.00")),
        (Decimal("3333.33"), Decimal("7.50"), Decimal("250.00")),
        (Decimal("5.55"), Decimal("10.00"), Decimal("0.56")),
        (Decimal("1.00"), Decimal("0.00"), Decimal("0.00")),
    ],
)
def test_percentage_of(amount, rate, expected):
    assert percentage_of(amount, rate) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (5, Decimal("5")),
        ("12.50", Decimal("12.50")),
        (1.5, Decimal("1.5")),
        (Decimal("2"), Decimal("2")),
        ("abc", None),
        (None, None),
        (True, None),
        ("NaN", None),
        ("Infinity", None),
    ],
)
def test_to_decimal(value, expected):
    assert to_decimal(value) == expected
