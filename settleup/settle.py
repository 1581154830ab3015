# settleup/settle.py
"""
Settlement planning (debt simplification).

Greedy largest-magnitude matching: repeatedly pair the member who is owed
the most with the member who owes the most and transfer the smaller of the
two magnitudes. Every step zeroes at least one of the two, so N imbalanced
members need at most N - 1 transfers.

This is a heuristic. Finding the true minimum number of transfers is
NP-hard in general (it needs a search over subsets of members whose balances
cancel out), and the greedy plan can be one or more transfers longer than
that minimum on some multi-way inputs. The planner trades that optimality
for a plan that is fast, simple and identical on every run for the same
balances.
"""

import heapq
import logging
from typing import Dict, Iterable, List, Sequence, Tuple

from .errors import CurrencyMismatchError, IntegrityInvariantViolation
from .models import Balance, Settlement

logger = logging.getLogger(__name__)


def _plan_currency(balances: Sequence[Balance]) -> str:
    currencies = sorted({b.currency for b in balances})
    if len(currencies) > 1:
        raise CurrencyMismatchError(expected=currencies[0], actual=currencies[1])
    return currencies[0]


def residual_tolerance(member_count: int) -> int:
    # Rounding every balance half-to-even is off by at most half a minor
    # unit each, so the total can drift by floor(N / 2) units
    return max(1, member_count // 2)


def plan_settlements(balances: Sequence[Balance]) -> List[Settlement]:
    """
    Minimal-ish ordered list of transfers that brings every balance to zero.

    Heaps are keyed by (-magnitude, member_id): largest magnitude first and,
    among equal magnitudes, the lexicographically smaller member id.
    """
    live = [b for b in balances if b.amount != 0]
    if not live:
        return []

    currency = _plan_currency(live)
    names: Dict[str, str] = {b.member_id: b.display_name for b in live}

    creditors: List[Tuple[int, str]] = []
    debtors: List[Tuple[int, str]] = []
    for b in live:
        if b.amount > 0:
            creditors.append((-b.amount, b.member_id))
        else:
            debtors.append((b.amount, b.member_id))
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    residual = sum(b.amount for b in live)
    if abs(residual) > residual_tolerance(len(live)):
        logger.error("Cannot plan settlements: balances sum to %d %s minor units", residual, currency)
        raise IntegrityInvariantViolation(f"Balances sum to {residual} {currency} minor units instead of zero")

    plan: List[Settlement] = []
    while creditors and debtors:
        neg_credit, creditor = heapq.heappop(creditors)
        neg_debt, debtor = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        amount = min(credit, debt)
        plan.append(
            Settlement(
                payer_id=debtor,
                recipient_id=creditor,
                amount=amount,
                currency=currency,
                payer_name=names[debtor],
                recipient_name=names[creditor],
            )
        )

        if credit > amount:
            heapq.heappush(creditors, (-(credit - amount), creditor))
        if debt > amount:
            heapq.heappush(debtors, (-(debt - amount), debtor))

    # Signed: > 0 is credit nobody paid, < 0 is debt nobody collects
    leftover = sum(-c for c, _ in creditors) - sum(-d for d, _ in debtors)
    if leftover > 0:
        for neg_credit, creditor in sorted(creditors):
            plan = _fold_leftover(plan, creditor, -neg_credit, currency, names)
    elif leftover < 0:
        logger.warning(
            "Leaving %d %s minor units of rounding residue with %s", -leftover, currency, [d for _, d in debtors]
        )

    return plan


def _fold_leftover(
    plan: List[Settlement], creditor: str, leftover: int, currency: str, names: Dict[str, str]
) -> List[Settlement]:
    # Creditors are always paid in full: unpaid credit is added to the latest
    # transfer into that creditor, or paid by the final payer if none exists
    if not plan:
        raise IntegrityInvariantViolation(
            f"{leftover} {currency} minor units owed to {creditor} with no payer to cover them"
        )
    logger.warning(
        "Folding %d %s minor units of rounding residue into a transfer to %s", leftover, currency, creditor
    )
    for i in range(len(plan) - 1, -1, -1):
        s = plan[i]
        if s.recipient_id == creditor:
            plan[i] = Settlement(
                payer_id=s.payer_id,
                recipient_id=s.recipient_id,
                amount=s.amount + leftover,
                currency=s.currency,
                payer_name=s.payer_name,
                recipient_name=s.recipient_name,
            )
            return plan

    last = plan[-1]
    plan.append(
        Settlement(
            payer_id=last.payer_id,
            recipient_id=creditor,
            amount=leftover,
            currency=currency,
            payer_name=last.payer_name,
            recipient_name=names[creditor],
        )
    )
    return plan


def apply_settlements(balances: Iterable[Balance], settlements: Iterable[Settlement]) -> Dict[str, int]:
    """Balances after every settlement has been paid, {member_id: amount}."""
    out = {b.member_id: b.amount for b in balances}
    for s in settlements:
        out[s.payer_id] = out.get(s.payer_id, 0) + s.amount
        out[s.recipient_id] = out.get(s.recipient_id, 0) - s.amount
    return out
