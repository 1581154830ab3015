from datetime import datetime, timedelta, timezone

from settleup.models import ExpenseRecord, ExpenseShare, GroupSnapshot, Member, PaymentRecord

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class Ledger:
    """Builds a GroupSnapshot one record at a time, in creation order."""

    def __init__(self, currency="USD", members=("a", "b", "c"), group_id="g1"):
        self.group_id = group_id
        self.currency = currency
        self.members = [Member(id=m, display_name=m.upper()) for m in members]
        self.expenses = []
        self.shares = []
        self.payments = []
        self._n = 0

    def _next(self):
        self._n += 1
        return T0 + timedelta(minutes=self._n)

    def expense(self, payer, amount, shares, currency=None, id=None, deleted=False):
        eid = id or f"e{len(self.expenses) + 1}"
        self.expenses.append(
            ExpenseRecord(
                id=eid,
                group_id=self.group_id,
                payer_id=payer,
                amount=amount,
                currency=currency or self.currency,
                is_deleted=deleted,
                created_at=self._next(),
                description=f"expense {eid}",
            )
        )
        for mid, v in shares.items():
            self.shares.append(ExpenseShare(expense_id=eid, member_id=mid, amount=v))
        return self

    def payment(self, payer, recipient, amount, currency=None, id=None, deleted=False):
        self.payments.append(
            PaymentRecord(
                id=id or f"p{len(self.payments) + 1}",
                group_id=self.group_id,
                payer_id=payer,
                recipient_id=recipient,
                amount=amount,
                currency=currency or self.currency,
                is_deleted=deleted,
                created_at=self._next(),
            )
        )
        return self

    def snapshot(self):
        return GroupSnapshot(
            group_id=self.group_id,
            currency=self.currency,
            members=tuple(self.members),
            expenses=tuple(self.expenses),
            shares=tuple(self.shares),
            payments=tuple(self.payments),
        )
