# settleup/aggregate.py
#
# Ledger aggregation: fold every expense and payment of one group into one
# signed net balance per member (positive = owed to the member).

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Sequence, Tuple, TypeVar

from .errors import CurrencyMismatchError, IntegrityInvariantViolation
from .models import ExpenseRecord, ExpenseShare, IntegrityWarning, Member, PaymentRecord
from .money import normalize_currency
from .splits import validate_expense_split

logger = logging.getLogger(__name__)

R = TypeVar("R", ExpenseRecord, PaymentRecord)


@dataclass(frozen=True)
class AggregationResult:
    currency: str
    balances: Dict[str, int]
    warnings: Tuple[IntegrityWarning, ...] = ()


_MIN_TS = datetime.min.replace(tzinfo=timezone.utc)


def _created_key(r) -> Tuple[bool, datetime]:
    ts = r.created_at
    if ts is None:
        return True, _MIN_TS
    if ts.tzinfo is None:
        # naive timestamps are taken as UTC
        ts = ts.replace(tzinfo=timezone.utc)
    return False, ts


def creation_order(records: Iterable[R]) -> List[R]:
    """
    Stable creation order: by created_at, records without a timestamp after
    the timestamped ones, ties keep input order. Naive timestamps count as UTC.
    """
    return sorted(records, key=_created_key)


def group_shares(shares: Iterable[ExpenseShare]) -> Dict[str, List[ExpenseShare]]:
    out: Dict[str, List[ExpenseShare]] = {}
    for s in shares:
        out.setdefault(s.expense_id, []).append(s)
    return out


def _check_currency(currency: str, record) -> None:
    if str(record.currency or "").strip().upper() != currency:
        raise CurrencyMismatchError(expected=currency, actual=record.currency, record_id=record.id)


def _payment_problem(p: PaymentRecord) -> str:
    if p.amount <= 0:
        return f"payment amount must be positive (got {p.amount})"
    if p.payer_id == p.recipient_id:
        return "payer and recipient are the same member"
    return ""


def usable_records(
    currency: str,
    expenses: Iterable[ExpenseRecord],
    shares: Iterable[ExpenseShare],
    payments: Iterable[PaymentRecord],
):
    """
    Filter a snapshot down to the records that may affect balances.

    Returns (expenses, shares_by_expense, payments, warnings), both record
    lists in creation order. Deleted rows are dropped silently; malformed
    ones are dropped with a warning. A record in another currency raises
    CurrencyMismatchError.
    """
    by_expense = group_shares(shares)
    warnings: List[IntegrityWarning] = []

    kept_expenses: List[ExpenseRecord] = []
    for e in creation_order(expenses):
        if e.is_deleted:
            continue
        _check_currency(currency, e)
        result = validate_expense_split(e, by_expense.get(e.id, []))
        if not result.ok:
            reason = "; ".join(result.rules)
            logger.warning("Excluding expense %s from group balances: %s", e.id, result.message())
            warnings.append(IntegrityWarning(record_id=e.id, record_kind="expense", reason=reason))
            continue
        kept_expenses.append(e)

    kept_payments: List[PaymentRecord] = []
    for p in creation_order(payments):
        if p.is_deleted:
            continue
        _check_currency(currency, p)
        problem = _payment_problem(p)
        if problem:
            logger.warning("Excluding payment %s from group balances: %s", p.id, problem)
            warnings.append(IntegrityWarning(record_id=p.id, record_kind="payment", reason=problem))
            continue
        kept_payments.append(p)

    return kept_expenses, by_expense, kept_payments, tuple(warnings)


def aggregate_ledger(
    currency: str,
    expenses: Iterable[ExpenseRecord],
    shares: Iterable[ExpenseShare],
    payments: Iterable[PaymentRecord],
    members: Sequence[Member] = (),
) -> AggregationResult:
    """
    Net balance per member.

    - expense: payer += amount, every participant -= share (the payer too
      when participating, so they net to amount minus own share)
    - payment: payer += amount, recipient -= amount (the transfer moves both
      of them toward zero; recording a settlement as a payment closes it)

    Every member passed in starts at 0 so settled members are still listed.
    Raises IntegrityInvariantViolation if the balances do not sum to zero.
    """
    currency = normalize_currency(currency)
    kept_expenses, by_expense, kept_payments, warnings = usable_records(currency, expenses, shares, payments)

    balances: Dict[str, int] = {m.id: 0 for m in members}

    for e in kept_expenses:
        balances[e.payer_id] = balances.get(e.payer_id, 0) + e.amount
        for s in by_expense[e.id]:
            balances[s.member_id] = balances.get(s.member_id, 0) - s.amount

    for p in kept_payments:
        balances[p.payer_id] = balances.get(p.payer_id, 0) + p.amount
        balances[p.recipient_id] = balances.get(p.recipient_id, 0) - p.amount

    total = sum(balances.values())
    if total != 0:
        logger.error("Group balances sum to %d minor units of %s instead of zero", total, currency)
        raise IntegrityInvariantViolation(f"Balances sum to {total} {currency} minor units instead of zero")

    return AggregationResult(currency=currency, balances=balances, warnings=warnings)


def pairwise_debts(
    currency: str,
    expenses: Iterable[ExpenseRecord],
    shares: Iterable[ExpenseShare],
    payments: Iterable[PaymentRecord],
) -> Dict[Tuple[str, str], int]:
    """
    Who owes whom, pair by pair: {(debtor, creditor): amount}.

    Each participant's share of an expense is a debt to its payer. A payment
    reduces what the payer owes to the named recipient only, never a debt
    to anyone else; paying more than that flips the direction of the pair.
    """
    currency = normalize_currency(currency)
    kept_expenses, by_expense, kept_payments, _ = usable_records(currency, expenses, shares, payments)

    # net[(a, b)] with a < b: positive means a owes b
    net: Dict[Tuple[str, str], int] = {}

    def owe(debtor: str, creditor: str, amount: int) -> None:
        if debtor == creditor:
            return
        if debtor < creditor:
            key, signed = (debtor, creditor), amount
        else:
            key, signed = (creditor, debtor), -amount
        net[key] = net.get(key, 0) + signed

    for e in kept_expenses:
        for s in by_expense[e.id]:
            owe(s.member_id, e.payer_id, s.amount)

    for p in kept_payments:
        # payer settles part of its debt to recipient
        owe(p.recipient_id, p.payer_id, p.amount)

    out: Dict[Tuple[str, str], int] = {}
    for (a, b), v in sorted(net.items()):
        if v > 0:
            out[(a, b)] = v
        elif v < 0:
            out[(b, a)] = -v
    return out


def balances_from_pairs(pairs: Dict[Tuple[str, str], int]) -> Dict[str, int]:
    # Credits minus debts per member; matches aggregate_ledger's balances
    out: Dict[str, int] = {}
    for (debtor, creditor), amount in pairs.items():
        out[debtor] = out.get(debtor, 0) - amount
        out[creditor] = out.get(creditor, 0) + amount
    return out
