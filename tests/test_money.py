from decimal import Decimal

import pytest

from settleup.errors import UnsupportedCurrencyError
from settleup.money import currency_scale, format_money, from_minor, normalize_currency, to_minor


def test_currency_scales():
    assert currency_scale("USD") == 2
    assert currency_scale("jpy") == 0
    assert currency_scale("KWD") == 3


def test_normalize_currency_rejects_unknown_codes():
    assert normalize_currency(" eur ") == "EUR"
    with pytest.raises(UnsupportedCurrencyError):
        normalize_currency("ABC")
    with pytest.raises(UnsupportedCurrencyError):
        normalize_currency(None)


def test_to_minor_from_strings_decimals_and_floats():
    assert to_minor("120.00", "USD") == 12000
    assert to_minor(Decimal("25.5"), "USD") == 2550
    assert to_minor(15.75, "USD") == 1575
    assert to_minor(0.1 + 0.2, "USD") == 30
    assert to_minor(1500, "JPY") == 1500
    assert to_minor("1.234", "KWD") == 1234


def test_to_minor_rounds_half_to_even():
    assert to_minor("0.125", "USD") == 12
    assert to_minor("0.135", "USD") == 14
    assert to_minor("-0.125", "USD") == -12


def test_from_minor():
    assert from_minor(4125, "USD") == Decimal("41.25")
    assert from_minor(-2550, "USD") == Decimal("-25.50")
    assert from_minor(300, "JPY") == Decimal("300")


def test_format_money():
    assert format_money(123456, "USD") == "1,234.56"
    assert format_money(8000, "USD", signed=True) == "+80.00"
    assert format_money(-4000, "USD", signed=True) == "-40.00"
    assert format_money(0, "USD", signed=True) == "0.00"
    assert format_money(1500000, "KRW") == "1,500,000"
