# settleup/models.py
#
# Value types passed into and returned from the ledger core.
# Amounts are always int minor units plus a currency code.

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .errors import SplitValidationError


@dataclass(frozen=True)
class Member:
    id: str
    display_name: str


@dataclass(frozen=True)
class ExpenseRecord:
    id: str
    group_id: str
    payer_id: str
    amount: int
    currency: str
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    description: str = ""


@dataclass(frozen=True)
class ExpenseShare:
    expense_id: str
    member_id: str
    amount: int


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    group_id: str
    payer_id: str
    recipient_id: str
    amount: int
    currency: str
    is_deleted: bool = False
    created_at: Optional[datetime] = None


class BalanceStatus(str, Enum):
    OWES = "owes"
    OWED = "owed"
    SETTLED = "settled"

    @classmethod
    def of(cls, amount: int) -> "BalanceStatus":
        if amount < 0:
            return cls.OWES
        if amount > 0:
            return cls.OWED
        return cls.SETTLED


@dataclass(frozen=True)
class Balance:
    """Net position of one member: positive is owed to them, negative they owe."""

    member_id: str
    display_name: str
    amount: int
    currency: str
    status: BalanceStatus = BalanceStatus.SETTLED

    @property
    def is_settled(self) -> bool:
        return self.amount == 0


@dataclass(frozen=True)
class Settlement:
    """
    A recommended transfer from payer (debtor) to recipient (creditor).
    It is not debt by itself; it only changes balances once recorded as a
    PaymentRecord.
    """

    payer_id: str
    recipient_id: str
    amount: int
    currency: str
    payer_name: str = ""
    recipient_name: str = ""


@dataclass(frozen=True)
class ValidationResult:
    errors: Tuple[SplitValidationError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def rules(self) -> Tuple[str, ...]:
        return tuple(e.rule for e in self.errors)

    def message(self) -> str:
        # One line per failed rule, suitable for a form error
        return "\n".join(e.message for e in self.errors)

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True)
class IntegrityWarning:
    record_id: str
    record_kind: str
    reason: str


@dataclass(frozen=True)
class GroupSnapshot:
    """All records of one group as of one point in time."""

    group_id: str
    currency: str
    members: Tuple[Member, ...] = ()
    expenses: Tuple[ExpenseRecord, ...] = ()
    shares: Tuple[ExpenseShare, ...] = ()
    payments: Tuple[PaymentRecord, ...] = ()

    def member_names(self) -> dict:
        return {m.id: m.display_name for m in self.members}


@dataclass(frozen=True)
class GroupSummary:
    balances: Tuple[Balance, ...] = ()
    settlements: Tuple[Settlement, ...] = ()
    warnings: Tuple[IntegrityWarning, ...] = field(default_factory=tuple)
