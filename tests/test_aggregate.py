import logging
import random
from datetime import datetime, timedelta, timezone

import pytest

from builders import Ledger
from settleup.aggregate import aggregate_ledger, balances_from_pairs, creation_order, pairwise_debts
from settleup.errors import CurrencyMismatchError, IntegrityInvariantViolation
from settleup.models import ExpenseRecord, Member


def _aggregate(ledger):
    return aggregate_ledger(ledger.currency, ledger.expenses, ledger.shares, ledger.payments, ledger.members)


def test_payer_is_credited_and_participants_debited():
    ledger = Ledger().expense("a", 12000, {"a": 4000, "b": 4000, "c": 4000})
    result = _aggregate(ledger)
    assert result.balances == {"a": 8000, "b": -4000, "c": -4000}
    assert result.currency == "USD"
    assert result.warnings == ()


def test_payer_outside_the_split_gets_full_credit():
    ledger = Ledger().expense("a", 3000, {"b": 1000, "c": 2000})
    assert _aggregate(ledger).balances == {"a": 3000, "b": -1000, "c": -2000}


def test_payment_moves_payer_and_recipient_toward_zero():
    ledger = Ledger().expense("a", 12000, {"a": 4000, "b": 4000, "c": 4000}).payment("b", "a", 4000)
    assert _aggregate(ledger).balances == {"a": 4000, "b": 0, "c": -4000}


def test_members_without_records_start_at_zero():
    ledger = Ledger(members=("a", "b", "c", "d")).expense("a", 1000, {"b": 1000})
    assert _aggregate(ledger).balances["d"] == 0


def test_unknown_members_in_records_are_included():
    ledger = Ledger(members=("a",)).expense("a", 1000, {"z": 1000})
    assert _aggregate(ledger).balances == {"a": 1000, "z": -1000}


def test_empty_input_gives_zero_balances():
    assert aggregate_ledger("USD", [], [], []).balances == {}
    ledger = Ledger()
    assert _aggregate(ledger).balances == {"a": 0, "b": 0, "c": 0}


def test_deleted_records_are_ignored():
    ledger = (
        Ledger()
        .expense("a", 12000, {"a": 4000, "b": 4000, "c": 4000}, deleted=True)
        .payment("b", "a", 500, deleted=True)
    )
    assert _aggregate(ledger).balances == {"a": 0, "b": 0, "c": 0}


def test_other_currency_is_refused():
    ledger = Ledger().expense("a", 1000, {"b": 1000}).expense("b", 500, {"a": 500}, currency="EUR")
    with pytest.raises(CurrencyMismatchError) as exc:
        _aggregate(ledger)
    assert exc.value.expected == "USD"
    assert exc.value.actual == "EUR"

    ledger = Ledger().payment("a", "b", 100, currency="JPY")
    with pytest.raises(CurrencyMismatchError):
        _aggregate(ledger)


def test_malformed_expense_is_excluded_with_warning(caplog):
    ledger = (
        Ledger()
        .expense("a", 3000, {"a": 1000, "b": 1000, "c": 1000})
        .expense("b", 1000, {"a": 600, "c": 300}, id="bad")
    )
    with caplog.at_level(logging.WARNING, logger="settleup.aggregate"):
        result = _aggregate(ledger)

    assert result.balances == {"a": 2000, "b": -1000, "c": -1000}
    (warning,) = result.warnings
    assert warning.record_id == "bad"
    assert warning.record_kind == "expense"
    assert "sum_mismatch" in warning.reason
    assert "bad" in caplog.text


def test_expense_without_shares_is_excluded():
    ledger = Ledger().expense("a", 3000, {})
    result = _aggregate(ledger)
    assert result.balances == {"a": 0, "b": 0, "c": 0}
    assert result.warnings[0].reason == "empty_shares"


def test_malformed_payments_are_excluded():
    ledger = Ledger().payment("a", "a", 100, id="self").payment("a", "b", 0, id="zero")
    result = _aggregate(ledger)
    assert result.balances == {"a": 0, "b": 0, "c": 0}
    assert [w.record_id for w in result.warnings] == ["self", "zero"]


def test_zero_sum_violation_fails_loudly(monkeypatch, caplog):
    # Simulate a validator bypass: shares that do not match the total
    monkeypatch.setattr("settleup.aggregate.validate_expense_split", lambda e, s: _always_ok())
    ledger = Ledger().expense("a", 1000, {"b": 999})
    with caplog.at_level(logging.ERROR, logger="settleup.aggregate"):
        with pytest.raises(IntegrityInvariantViolation):
            _aggregate(ledger)
    assert "instead of zero" in caplog.text


def _always_ok():
    from settleup.models import ValidationResult

    return ValidationResult()


def _random_ledger(seed, members=("a", "b", "c", "d", "e")):
    rnd = random.Random(seed)
    ledger = Ledger(members=members)
    for _ in range(30):
        if rnd.random() < 0.7:
            payer = rnd.choice(members)
            parts = rnd.sample(members, rnd.randint(1, len(members)))
            shares = {m: rnd.randint(1, 50000) for m in parts}
            ledger.expense(payer, sum(shares.values()), shares)
        else:
            payer, recipient = rnd.sample(members, 2)
            ledger.payment(payer, recipient, rnd.randint(1, 30000))
    return ledger


@pytest.mark.parametrize("seed", range(10))
def test_balances_always_sum_to_zero(seed):
    assert sum(_aggregate(_random_ledger(seed)).balances.values()) == 0


@pytest.mark.parametrize("seed", range(5))
def test_input_order_does_not_change_result(seed):
    ledger = _random_ledger(seed)
    expected = _aggregate(ledger).balances

    rnd = random.Random(seed)
    expenses, shares, payments = list(ledger.expenses), list(ledger.shares), list(ledger.payments)
    rnd.shuffle(expenses)
    rnd.shuffle(shares)
    rnd.shuffle(payments)
    again = aggregate_ledger("USD", expenses, shares, payments, ledger.members)
    assert again.balances == expected


def test_creation_order_is_stable_and_puts_untimed_records_last():
    timed = Ledger().expense("a", 1, {"a": 1}).expense("a", 1, {"a": 1}).expenses
    untimed = [ExpenseRecord(id=f"u{i}", group_id="g1", payer_id="a", amount=1, currency="USD") for i in range(3)]
    ordered = creation_order([untimed[0], timed[1], untimed[1], timed[0], untimed[2]])
    assert [r.id for r in ordered] == ["e1", "e2", "u0", "u1", "u2"]


def test_creation_order_mixes_naive_and_aware_timestamps():
    def rec(rid, ts):
        return ExpenseRecord(id=rid, group_id="g1", payer_id="a", amount=1, currency="USD", created_at=ts)

    records = [
        rec("late", datetime(2025, 1, 1, 2, 0, tzinfo=timezone.utc)),
        rec("naive", datetime(2025, 1, 1, 1, 0)),
        rec("early", datetime(2025, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))),
        rec("untimed", None),
    ]
    assert [r.id for r in creation_order(records)] == ["early", "naive", "late", "untimed"]


def test_pairwise_multi_pair_scenario():
    # a paid dinner for everyone, b paid taxi for a and c, then c paid b back
    ledger = (
        Ledger()
        .expense("a", 9000, {"a": 3000, "b": 3000, "c": 3000})
        .expense("b", 2000, {"a": 1000, "c": 1000})
        .payment("c", "b", 1000)
    )
    pairs = pairwise_debts("USD", ledger.expenses, ledger.shares, ledger.payments)

    # b owes a 3000 for dinner; a owes b 1000 for the taxi
    assert pairs == {("b", "a"): 2000, ("c", "a"): 3000}

    # the payment only cleared c's debt to b, not c's debt to a
    assert ("c", "b") not in pairs
    assert balances_from_pairs(pairs) == {"a": 5000, "b": -2000, "c": -3000}
    assert balances_from_pairs(pairs) == {k: v for k, v in _aggregate(ledger).balances.items() if v}


def test_pairwise_overpayment_flips_direction():
    ledger = Ledger().expense("a", 1000, {"b": 1000}).payment("b", "a", 1500)
    pairs = pairwise_debts("USD", ledger.expenses, ledger.shares, ledger.payments)
    assert pairs == {("a", "b"): 500}


def test_payment_to_unrelated_member_is_not_a_group_credit():
    # b owes a; paying c instead zeroes b's aggregate balance, but pair by
    # pair b still owes a and c now owes b
    ledger = Ledger().expense("a", 1000, {"b": 1000}).payment("b", "c", 1000)
    pairs = pairwise_debts("USD", ledger.expenses, ledger.shares, ledger.payments)
    assert pairs == {("b", "a"): 1000, ("c", "b"): 1000}
    assert _aggregate(ledger).balances == {"a": 1000, "b": 0, "c": -1000}


@pytest.mark.parametrize("seed", range(10))
def test_pairwise_ledger_matches_aggregate(seed):
    ledger = _random_ledger(seed)
    pairs = pairwise_debts("USD", ledger.expenses, ledger.shares, ledger.payments)
    expected = {k: v for k, v in _aggregate(ledger).balances.items() if v}
    got = {k: v for k, v in balances_from_pairs(pairs).items() if v}
    assert got == expected
    assert all(v > 0 for v in pairs.values())


def test_members_argument_accepts_member_objects():
    result = aggregate_ledger("usd", [], [], [], [Member("x", "X")])
    assert result.balances == {"x": 0}
    assert result.currency == "USD"
