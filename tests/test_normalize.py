from decimal import Decimal

import pytest

from settleup.models import BalanceStatus
from settleup.normalize import non_settled, normalize_balances


def test_classifies_and_sorts_largest_creditor_first():
    balances = normalize_balances({"c": -4000, "a": 8000, "b": -4000, "d": 0}, "usd", {"a": "Alice"})

    assert [(b.member_id, b.amount, b.status) for b in balances] == [
        ("a", 8000, BalanceStatus.OWED),
        ("d", 0, BalanceStatus.SETTLED),
        ("b", -4000, BalanceStatus.OWES),
        ("c", -4000, BalanceStatus.OWES),
    ]
    assert balances[0].display_name == "Alice"
    assert balances[1].display_name == "d"
    assert all(b.currency == "USD" for b in balances)


def test_major_unit_amounts_are_rounded_half_to_even():
    balances = normalize_balances(
        {"a": Decimal("10.125"), "b": -10.135, "c": Decimal("0.004"), "d": 5}, "USD", unit="major"
    )
    by_id = {b.member_id: b for b in balances}
    assert by_id["a"].amount == 1012
    assert by_id["b"].amount == -1014
    assert by_id["c"].amount == 0
    assert by_id["c"].status is BalanceStatus.SETTLED
    assert by_id["d"].amount == 500


def test_minor_units_must_be_ints():
    with pytest.raises(TypeError, match="unit=\"major\""):
        normalize_balances({"a": 5.0}, "USD")
    with pytest.raises(TypeError):
        normalize_balances({"a": Decimal("5")}, "USD")
    assert normalize_balances({"a": 5}, "USD")[0].amount == 5


def test_unknown_unit():
    with pytest.raises(ValueError):
        normalize_balances({"a": 5}, "USD", unit="cents")


def test_bool_is_not_an_amount():
    with pytest.raises(TypeError):
        normalize_balances({"a": True}, "USD")
    with pytest.raises(TypeError):
        normalize_balances({"a": True}, "USD", unit="major")


def test_non_settled_filters_zero_balances():
    balances = normalize_balances({"a": 100, "b": 0, "c": -100}, "USD")
    assert [b.member_id for b in non_settled(balances)] == ["a", "c"]


def test_empty_input():
    assert normalize_balances({}, "USD") == []
