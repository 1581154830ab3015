# settleup/splits.py
#
# Split validation (write-time gate, re-run defensively by the aggregator)
# and integer allocation helpers that always produce valid splits.

from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .errors import (
    DuplicateParticipantError,
    EmptySplitError,
    ForeignShareError,
    InvalidExpenseAmountError,
    NonPositiveShareError,
    SplitMismatchError,
    SplitValidationError,
)
from .models import ExpenseRecord, ExpenseShare, ValidationResult
from .money import to_decimal


def validate_expense_split(expense: ExpenseRecord, shares: Iterable[ExpenseShare]) -> ValidationResult:
    """
    Check that an expense's shares are a valid split of its amount.

    Every failed rule is reported, not only the first one:
    - expense amount must be > 0
    - at least one share
    - every share > 0 and belongs to this expense
    - no member appears twice
    - sum(shares) == amount exactly (amounts are integers, no tolerance)
    """
    shares = list(shares)
    errors: List[SplitValidationError] = []

    if expense.amount <= 0:
        errors.append(
            InvalidExpenseAmountError(f"Expense amount must be positive (got {expense.amount})", expense_id=expense.id)
        )

    if not shares:
        errors.append(EmptySplitError("Select at least one participant", expense_id=expense.id))
        return ValidationResult(tuple(errors))

    seen = set()
    for s in shares:
        if s.expense_id != expense.id:
            errors.append(
                ForeignShareError(
                    f"Share for {s.member_id} belongs to expense {s.expense_id}",
                    expense_id=expense.id,
                    member_id=s.member_id,
                )
            )
        if s.amount <= 0:
            errors.append(
                NonPositiveShareError(
                    f"Share for {s.member_id} must be positive (got {s.amount})",
                    expense_id=expense.id,
                    member_id=s.member_id,
                )
            )
        if s.member_id in seen:
            errors.append(
                DuplicateParticipantError(
                    f"{s.member_id} appears more than once in the split",
                    expense_id=expense.id,
                    member_id=s.member_id,
                )
            )
        seen.add(s.member_id)

    total = sum(s.amount for s in shares)
    if total != expense.amount:
        errors.append(SplitMismatchError(expected=expense.amount, actual=total, expense_id=expense.id))

    return ValidationResult(tuple(errors))


# ------------------------
# Allocation
# ------------------------
def allocate_even(amount: int, member_ids: Sequence[str]) -> Dict[str, int]:
    """
    Split amount evenly across members with:
    - floor to the minor unit
    - remainder distributed +1 unit to the first members (stable order)
    """
    n = len(member_ids)
    if n <= 0:
        raise ValueError("No participants to split among")

    base, remainder = divmod(int(amount), n)
    alloc = {str(mid): base for mid in member_ids}
    for mid in member_ids[:remainder]:
        alloc[str(mid)] += 1
    return alloc


def _largest_remainder(amount: int, exact: List[Tuple[str, Decimal]]) -> Dict[str, int]:
    # Floor every exact part, then hand the leftover units to the biggest
    # fractional parts first (ties keep input order)
    floors = {mid: int(x) for mid, x in exact}
    leftover = int(amount) - sum(floors.values())

    order = sorted(range(len(exact)), key=lambda i: (-(exact[i][1] - int(exact[i][1])), i))
    for i in order[:leftover]:
        floors[exact[i][0]] += 1
    return floors


def allocate_percent(amount: int, percents: Mapping[str, object]) -> Dict[str, int]:
    if not percents:
        raise ValueError("No participants to split among")

    parts = [(str(mid), to_decimal(p)) for mid, p in percents.items()]
    if any(p < 0 for _, p in parts):
        raise ValueError("Percentages must not be negative")
    total = sum((p for _, p in parts), Decimal(0))
    if total != Decimal(100):
        raise ValueError(f"Percentages must sum to 100% (got {total}%)")

    exact = [(mid, Decimal(int(amount)) * p / Decimal(100)) for mid, p in parts]
    return _largest_remainder(amount, exact)


def allocate_weights(amount: int, weights: Mapping[str, int]) -> Dict[str, int]:
    # "Shares" split: e.g. {a: 2, b: 1} gives a two thirds
    if not weights:
        raise ValueError("No participants to split among")
    if any(int(w) <= 0 for w in weights.values()):
        raise ValueError("Weights must be positive")

    total = sum(int(w) for w in weights.values())
    exact = [(str(mid), Decimal(int(amount)) * int(w) / Decimal(total)) for mid, w in weights.items()]
    return _largest_remainder(amount, exact)


def allocate_exact(amount: int, amounts: Mapping[str, int]) -> Dict[str, int]:
    # User input is respected as-is; a mismatch is reported by the validator
    return {str(mid): int(v) for mid, v in amounts.items()}


SPLIT_METHODS = {
    "even": "even",
    "equal": "even",
    "%": "percent",
    "percent": "percent",
    "percentage": "percent",
    "shares": "weights",
    "weights": "weights",
    "$": "exact",
    "amount": "exact",
    "exact": "exact",
}


def norm_split_method(how: str) -> str:
    return SPLIT_METHODS.get((how or "even").strip().lower(), "even")


def build_shares(expense_id: str, allocation: Mapping[str, int]) -> List[ExpenseShare]:
    return [ExpenseShare(expense_id=str(expense_id), member_id=str(mid), amount=int(v)) for mid, v in allocation.items()]


def allocate(how: str, amount: int, member_ids: Sequence[str], values=None) -> Dict[str, int]:
    """
    Build a {member_id: share} allocation for one of the split methods.
    `values` holds per-member percents, weights or exact amounts depending
    on `how`; it is ignored for even splits.
    """
    method = norm_split_method(how)
    values = values or {}
    member_ids = [str(m) for m in member_ids]

    if method == "even":
        return allocate_even(amount, member_ids)
    picked = {mid: values.get(mid, 0) for mid in member_ids}
    if method == "percent":
        return allocate_percent(amount, picked)
    if method == "weights":
        return allocate_weights(amount, picked)
    return allocate_exact(amount, picked)
