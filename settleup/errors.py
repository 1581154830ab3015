# settleup/errors.py
#
# Error taxonomy for the ledger core.
# - Split validation errors are returned as values (see ValidationResult)
# - Currency and integrity errors are raised

from typing import Optional


class LedgerError(Exception):
    """Base class for every error raised or reported by the ledger core."""


# ------------------------
# Split validation
# ------------------------
class SplitValidationError(LedgerError):
    rule = "invalid_split"

    def __init__(self, message: str, expense_id: Optional[str] = None, member_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.expense_id = expense_id
        self.member_id = member_id


class SplitMismatchError(SplitValidationError):
    rule = "sum_mismatch"

    def __init__(self, expected: int, actual: int, expense_id: Optional[str] = None):
        diff = actual - expected
        super().__init__(
            f"Shares add up to {actual} but the expense total is {expected} ({diff:+d} minor units)",
            expense_id=expense_id,
        )
        self.expected = expected
        self.actual = actual


class EmptySplitError(SplitValidationError):
    rule = "empty_shares"


class NonPositiveShareError(SplitValidationError):
    rule = "non_positive_share"


class DuplicateParticipantError(SplitValidationError):
    rule = "duplicate_member"


class InvalidExpenseAmountError(SplitValidationError):
    rule = "non_positive_amount"


class ForeignShareError(SplitValidationError):
    rule = "foreign_share"


# ------------------------
# Currency
# ------------------------
class UnsupportedCurrencyError(LedgerError, ValueError):
    def __init__(self, currency):
        super().__init__(f"Unsupported currency code: {currency!r}")
        self.currency = currency


class CurrencyMismatchError(LedgerError):
    def __init__(self, expected: str, actual: str, record_id: Optional[str] = None):
        where = f" (record {record_id})" if record_id is not None else ""
        super().__init__(f"Currency {actual} does not match group currency {expected}{where}")
        self.expected = expected
        self.actual = actual
        self.record_id = record_id


# ------------------------
# Integrity
# ------------------------
class IntegrityInvariantViolation(LedgerError):
    """Aggregated data broke an invariant that valid input can never break."""
