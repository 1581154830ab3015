# settleup/report.py
#
# pandas tables for display and export.

from typing import Dict, List, Sequence

import pandas as pd

from .aggregate import usable_records
from .models import Balance, GroupSnapshot, Settlement
from .money import format_money, from_minor, normalize_currency

BALANCE_COLUMNS = ["Member", "Net", "Status"]
SETTLEMENT_COLUMNS = ["From", "To", "Amount"]
MATRIX_COLUMNS = ["Record ID", "Kind", "Title"]


def balances_frame(balances: Sequence[Balance]) -> pd.DataFrame:
    rows = [
        {
            "Member": b.display_name,
            "Net": format_money(b.amount, b.currency, signed=True),
            "Status": b.status.value,
            "_amt_num": b.amount,
        }
        for b in balances
    ]
    return pd.DataFrame(rows, columns=BALANCE_COLUMNS + ["_amt_num"])


def settlements_frame(settlements: Sequence[Settlement]) -> pd.DataFrame:
    rows = [
        {
            "From": s.payer_name or s.payer_id,
            "To": s.recipient_name or s.recipient_id,
            "Amount": format_money(s.amount, s.currency),
            "_amt_num": s.amount,
        }
        for s in settlements
    ]
    return pd.DataFrame(rows, columns=SETTLEMENT_COLUMNS + ["_amt_num"])


def member_column_labels(member_ids: Sequence[str], names: Dict[str, str]) -> List[str]:
    # Display names are not unique; a repeated name (or one equal to a fixed
    # column) gets the member id appended, like group labels in main.py
    taken = set(MATRIX_COLUMNS)
    labels: List[str] = []
    for mid in member_ids:
        base = names.get(mid) or mid
        label = base
        if label in taken:
            label = f"{base} [{mid[:8]}]"
        if label in taken:
            label = f"{base} [{mid}]"
        n = 2
        while label in taken:
            label = f"{base} [{mid}] ({n})"
            n += 1
        taken.add(label)
        labels.append(label)
    return labels


def build_net_matrix(snapshot: GroupSnapshot) -> pd.DataFrame:
    """
    Net matrix, one row per usable expense/payment, one column per member:
    - expense row: payer +amount, every participant -share
    - payment row: payer +amount, recipient -amount
    Each row sums to 0 and each member column sums to that member's balance.
    Amounts are shown in major units of the group currency.
    """
    currency = normalize_currency(snapshot.currency)
    names = snapshot.member_names()

    expenses, by_expense, payments, _ = usable_records(
        currency, snapshot.expenses, snapshot.shares, snapshot.payments
    )

    member_ids: List[str] = [m.id for m in snapshot.members]
    for e in expenses:
        for mid in [e.payer_id] + [s.member_id for s in by_expense[e.id]]:
            if mid not in member_ids:
                member_ids.append(mid)
    for p in payments:
        for mid in (p.payer_id, p.recipient_id):
            if mid not in member_ids:
                member_ids.append(mid)

    member_cols = member_column_labels(member_ids, names)
    cols = MATRIX_COLUMNS + member_cols

    rows = []
    for e in expenses:
        delta: Dict[str, int] = {e.payer_id: e.amount}
        for s in by_expense[e.id]:
            delta[s.member_id] = delta.get(s.member_id, 0) - s.amount
        rows.append(("expense", e.id, e.description, delta))
    for p in payments:
        rows.append(("payment", p.id, "Payment", {p.payer_id: p.amount, p.recipient_id: -p.amount}))

    out = []
    for kind, rid, title, delta in rows:
        row = {"Record ID": rid, "Kind": kind, "Title": title}
        for mid, col in zip(member_ids, member_cols):
            row[col] = float(from_minor(delta.get(mid, 0), currency))
        out.append(row)

    df = pd.DataFrame(out, columns=cols)
    for col in member_cols:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)
    return df
