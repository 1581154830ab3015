# settleup: group expense ledger core (balances + settlement plan)

from .errors import (
    CurrencyMismatchError,
    IntegrityInvariantViolation,
    LedgerError,
    SplitMismatchError,
    SplitValidationError,
    UnsupportedCurrencyError,
)
from .models import (
    Balance,
    BalanceStatus,
    ExpenseRecord,
    ExpenseShare,
    GroupSnapshot,
    GroupSummary,
    Member,
    PaymentRecord,
    Settlement,
    ValidationResult,
)
from .service import compute_balances, compute_settlement_plan, summarize, validate_expense_split

__version__ = "0.1.0"
