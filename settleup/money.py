# settleup/money.py
#
# Currency table and minor-unit helpers.
# All ledger arithmetic is done on int minor units; Decimal is only used at
# the boundary (DB numeric columns, user input, display).

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Union

from .errors import UnsupportedCurrencyError

Number = Union[int, float, str, Decimal]

# ISO 4217 codes accepted for groups, expenses and payments
SUPPORTED_CURRENCIES = (
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD", "SEK", "NOK",
    "DKK", "PLN", "CZK", "HUF", "RUB", "CNY", "HKD", "SGD", "KRW", "THB",
    "MYR", "IDR", "PHP", "VND", "INR", "PKR", "BDT", "LKR", "NPR", "MMK",
    "LAK", "KHR", "BND", "TWD", "MOP", "BRL", "ARS", "CLP", "COP", "PEN",
    "MXN", "ZAR", "EGP", "MAD", "TND", "NGN", "KES", "GHS", "XOF", "XAF",
    "ETB", "UGX", "TZS", "RWF", "MWK", "ZMW", "BWP", "SZL", "LSL", "NAD",
    "MZN", "AOA", "BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "XDR", "XAU",
    "XAG", "XPT", "XPD",
)

NO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "IDR", "CLP", "UGX", "RWF", "XOF", "XAF"}
THREE_DECIMAL_CURRENCIES = {"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"}


def normalize_currency(currency) -> str:
    """Upper-case and strip a currency code, rejecting unsupported ones."""
    code = str(currency or "").strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise UnsupportedCurrencyError(currency)
    return code


def is_supported_currency(currency) -> bool:
    return str(currency or "").strip().upper() in SUPPORTED_CURRENCIES


def currency_scale(currency: str) -> int:
    # Number of decimal places of the currency's minor unit
    c = normalize_currency(currency)
    if c in NO_DECIMAL_CURRENCIES:
        return 0
    if c in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def quant_unit(currency: str) -> Decimal:
    # scale=2 -> 0.01, scale=0 -> 1
    return Decimal(1).scaleb(-currency_scale(currency))


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr of a float is the shortest string that round-trips
        return Decimal(repr(value))
    return Decimal(str(value).strip())


def to_minor(value: Number, currency: str) -> int:
    """
    Convert a major-unit amount (e.g. 12.34 USD) to int minor units (1234).
    Values finer than the minor unit are rounded half-to-even.
    """
    scale = currency_scale(currency)
    d = to_decimal(value).quantize(quant_unit(currency), rounding=ROUND_HALF_EVEN)
    return int(d.scaleb(scale))


def from_minor(minor: int, currency: str) -> Decimal:
    scale = currency_scale(currency)
    return Decimal(int(minor)).scaleb(-scale).quantize(quant_unit(currency))


def format_money(minor: int, currency: str, signed: bool = False) -> str:
    # - No-decimal currencies -> integer with commas
    # - Others -> currency decimals with commas
    scale = currency_scale(currency)
    d = from_minor(minor, currency)
    sign = "+" if signed and d > 0 else ""
    return f"{sign}{d:,.{scale}f}"
