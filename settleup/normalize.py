# settleup/normalize.py
#
# Raw per-member balances -> member-facing Balance list.

from decimal import Decimal
from typing import List, Mapping, Optional, Union

from .models import Balance, BalanceStatus
from .money import normalize_currency, to_minor

RawAmount = Union[int, float, Decimal]


UNITS = ("minor", "major")


def _as_minor(value: RawAmount, currency: str, unit: str) -> int:
    if isinstance(value, bool):
        raise TypeError("Balance amount must be a number, not bool")
    if unit == "major":
        # Decimal/float/int major units, rounded half-to-even to the minor unit
        return to_minor(value, currency)
    if not isinstance(value, int):
        raise TypeError(
            f"Minor-unit balance must be an int, got {type(value).__name__}; pass unit=\"major\" for major units"
        )
    return value


def normalize_balances(
    raw: Mapping[str, RawAmount],
    currency: str,
    names: Optional[Mapping[str, str]] = None,
    unit: str = "minor",
) -> List[Balance]:
    """
    Quantize and classify balances.

    `unit` says how every value in `raw` is read: "minor" takes ints as
    minor units, "major" takes any number as major units of `currency`.

    Sorted by amount descending (largest creditor first), then by member id
    so the order is stable across runs.
    """
    if unit not in UNITS:
        raise ValueError(f"Unknown balance unit: {unit!r} (expected one of {UNITS})")
    currency = normalize_currency(currency)
    names = names or {}

    out = []
    for member_id, value in raw.items():
        amount = _as_minor(value, currency, unit)
        out.append(
            Balance(
                member_id=member_id,
                display_name=names.get(member_id) or str(member_id),
                amount=amount,
                currency=currency,
                status=BalanceStatus.of(amount),
            )
        )

    out.sort(key=lambda b: (-b.amount, b.member_id))
    return out


def non_settled(balances: List[Balance]) -> List[Balance]:
    return [b for b in balances if b.status is not BalanceStatus.SETTLED]
