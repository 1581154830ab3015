# settleup/service.py
#
# Query facade over one GroupSnapshot. Every call is a full recompute and
# keeps no state between calls, so it is safe to run concurrently.

from typing import Iterable, List

from .aggregate import AggregationResult, aggregate_ledger, pairwise_debts
from .models import Balance, ExpenseRecord, ExpenseShare, GroupSnapshot, GroupSummary, Settlement, ValidationResult
from .normalize import non_settled, normalize_balances
from .settle import plan_settlements
from .splits import validate_expense_split as _validate_expense_split


def _aggregate(snapshot: GroupSnapshot) -> AggregationResult:
    return aggregate_ledger(
        snapshot.currency,
        snapshot.expenses,
        snapshot.shares,
        snapshot.payments,
        members=snapshot.members,
    )


def compute_balances(snapshot: GroupSnapshot) -> List[Balance]:
    agg = _aggregate(snapshot)
    return normalize_balances(agg.balances, agg.currency, snapshot.member_names())


def compute_settlement_plan(snapshot: GroupSnapshot) -> List[Settlement]:
    return plan_settlements(non_settled(compute_balances(snapshot)))


def validate_expense_split(expense: ExpenseRecord, shares: Iterable[ExpenseShare]) -> ValidationResult:
    return _validate_expense_split(expense, shares)


def summarize(snapshot: GroupSnapshot) -> GroupSummary:
    """Balances, plan and integrity warnings from a single aggregation pass."""
    agg = _aggregate(snapshot)
    balances = normalize_balances(agg.balances, agg.currency, snapshot.member_names())
    plan = plan_settlements(non_settled(balances))
    return GroupSummary(balances=tuple(balances), settlements=tuple(plan), warnings=agg.warnings)


def who_owes_whom(snapshot: GroupSnapshot):
    return pairwise_debts(snapshot.currency, snapshot.expenses, snapshot.shares, snapshot.payments)
