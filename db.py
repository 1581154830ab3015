# db.py (Supabase API version using supabase-py)
#
# Notes:
# - Uses Supabase REST API (PostgREST) via supabase-py
# - Amounts are NUMERIC major units in the database and int minor units
#   everywhere in the app (converted with settleup.money)
# - Soft delete: rows with deleted_at set are ignored
# - Requires Streamlit secrets:
#   [supabase]
#   url = "https://<PROJECT_REF>.supabase.co"
#   service_role_key = "<SERVICE_ROLE_KEY>"

import logging
import random
import time

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
import pandas as pd
import streamlit as st
from supabase import create_client, Client

from settleup import service
from settleup.errors import LedgerError
from settleup.models import (
    Balance,
    ExpenseRecord,
    ExpenseShare,
    GroupSnapshot,
    GroupSummary,
    Member,
    PaymentRecord,
    Settlement,
)
from settleup.money import from_minor, normalize_currency, to_minor
from settleup.splits import allocate, build_shares

logger = logging.getLogger(__name__)

# Share lookups are batched so the PostgREST URL stays short
SHARE_BATCH_SIZE = 100


# ------------------------
# Supabase client
# ------------------------
def _supabase_url() -> str:
    try:
        return st.secrets["supabase"]["url"]
    except Exception:
        raise RuntimeError("Missing secrets: set [supabase].url in .streamlit/secrets.toml or Streamlit Cloud Secrets")


def _supabase_service_role_key() -> str:
    try:
        return st.secrets["supabase"]["service_role_key"]
    except Exception:
        raise RuntimeError(
            "Missing secrets: set [supabase].service_role_key in .streamlit/secrets.toml or Streamlit Cloud Secrets"
        )


@st.cache_resource(show_spinner=False)
def _sb() -> Client:
    return create_client(_supabase_url(), _supabase_service_role_key())


def _ok(resp) -> Tuple[bool, Optional[str]]:
    err = getattr(resp, "error", None)
    if err:
        return False, str(err)
    return True, None


def _execute_with_retry(q, tries: int = 4, base_sleep: float = 0.35):
    last_exc = None
    for i in range(tries):
        try:
            return q.execute()
        except (
            httpx.RemoteProtocolError,
            httpx.ReadTimeout,
            httpx.ConnectTimeout,
            httpx.WriteTimeout,
            httpx.PoolTimeout,
            httpx.ConnectError,
        ) as e:
            last_exc = e
            logger.warning("Supabase request failed (%s), attempt %d/%d", type(e).__name__, i + 1, tries)
            time.sleep(base_sleep * (2**i) + random.uniform(0.0, 0.2))
            _sb.clear()
    raise last_exc


def _rows(q) -> List[Dict[str, Any]]:
    # Read helper: raise on DB error, always return a list
    resp = _execute_with_retry(q)
    ok, msg = _ok(resp)
    if not ok:
        raise RuntimeError(f"DB error: {msg}")
    return list(resp.data or [])


# ------------------------
# Row helpers
# ------------------------
def _norm_id(x) -> str:
    if x is None:
        return ""
    return str(x).strip()


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    return pd.Timestamp(value).to_pydatetime()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _expense_from_row(r: Dict[str, Any], currency_hint: str) -> ExpenseRecord:
    ccy = str(r.get("currency") or currency_hint).upper().strip()
    return ExpenseRecord(
        id=_norm_id(r["id"]),
        group_id=_norm_id(r["group_id"]),
        payer_id=_norm_id(r["payer_id"]),
        amount=to_minor(r["amount"], ccy),
        currency=ccy,
        is_deleted=r.get("deleted_at") is not None,
        created_at=_parse_ts(r.get("created_at")),
        description=(r.get("description") or "").strip(),
    )


def _payment_from_row(r: Dict[str, Any], currency_hint: str) -> PaymentRecord:
    ccy = str(r.get("currency") or currency_hint).upper().strip()
    return PaymentRecord(
        id=_norm_id(r["id"]),
        group_id=_norm_id(r["group_id"]),
        payer_id=_norm_id(r["payer_id"]),
        recipient_id=_norm_id(r["recipient_id"]),
        amount=to_minor(r["amount"], ccy),
        currency=ccy,
        is_deleted=r.get("deleted_at") is not None,
        created_at=_parse_ts(r.get("created_at")),
    )


# ------------------------
# Init
# ------------------------
def init_db() -> None:
    sb = _sb()
    resp = _execute_with_retry(sb.table("groups").select("id").limit(1))
    ok, msg = _ok(resp)
    if not ok:
        raise RuntimeError(f"Supabase connectivity check failed: {msg}")


# ------------------------
# Reads (group scoped)
# ------------------------
def list_groups() -> List[Dict]:
    sb = _sb()
    return _rows(
        sb.table("groups").select("id,name,primary_currency").is_("deleted_at", "null").order("name", desc=False)
    )


def get_group(group_id) -> Optional[Dict]:
    sb = _sb()
    rows = _rows(
        sb.table("groups")
        .select("id,name,primary_currency")
        .eq("id", _norm_id(group_id))
        .is_("deleted_at", "null")
        .limit(1)
    )
    return rows[0] if rows else None


def group_currency(group_id) -> str:
    group = get_group(group_id)
    if group is None:
        raise RuntimeError("Group not found or has been deleted")
    return normalize_currency(group.get("primary_currency") or "USD")


def list_members(group_id) -> List[Member]:
    sb = _sb()
    group_id = _norm_id(group_id)

    gm_rows = _rows(sb.table("group_members").select("user_id").eq("group_id", group_id))
    user_ids = [_norm_id(r["user_id"]) for r in gm_rows]
    if not user_ids:
        return []

    u_rows = _rows(
        sb.table("users").select("id,display_name").in_("id", user_ids).is_("deleted_at", "null")
    )
    members = [Member(id=_norm_id(r["id"]), display_name=(r.get("display_name") or "").strip()) for r in u_rows]

    # sort by name (case-insensitive, trimmed) to keep UI consistent
    return sorted(members, key=lambda m: (m.display_name.lower(), m.id))


def list_expenses(group_id, currency: str = "") -> List[ExpenseRecord]:
    sb = _sb()
    rows = _rows(
        sb.table("expenses")
        .select("id,group_id,payer_id,amount,currency,description,created_at,deleted_at")
        .eq("group_id", _norm_id(group_id))
        .is_("deleted_at", "null")
        .order("created_at", desc=False)
        .order("id", desc=False)
    )
    return [_expense_from_row(r, currency) for r in rows]


def list_expense_shares(expense_ids: Sequence[str], currencies: Mapping[str, str]) -> List[ExpenseShare]:
    """
    Participant shares of the given expenses.
    `currencies` maps expense id -> currency, needed to convert share_amount.
    """
    sb = _sb()
    expense_ids = [_norm_id(x) for x in expense_ids]

    out: List[ExpenseShare] = []
    for start in range(0, len(expense_ids), SHARE_BATCH_SIZE):
        batch = expense_ids[start:start + SHARE_BATCH_SIZE]
        rows = _rows(
            sb.table("expense_participants").select("expense_id,user_id,share_amount").in_("expense_id", batch)
        )
        for r in rows:
            eid = _norm_id(r["expense_id"])
            out.append(
                ExpenseShare(
                    expense_id=eid,
                    member_id=_norm_id(r["user_id"]),
                    amount=to_minor(r["share_amount"], currencies[eid]),
                )
            )
    return out


def list_payments(group_id, currency: str = "") -> List[PaymentRecord]:
    sb = _sb()
    rows = _rows(
        sb.table("payments")
        .select("id,group_id,payer_id,recipient_id,amount,currency,created_at,deleted_at")
        .eq("group_id", _norm_id(group_id))
        .is_("deleted_at", "null")
        .order("created_at", desc=False)
        .order("id", desc=False)
    )
    return [_payment_from_row(r, currency) for r in rows]


def load_snapshot(group_id) -> GroupSnapshot:
    # One read of everything the ledger core needs for a group
    group_id = _norm_id(group_id)
    currency = group_currency(group_id)

    members = list_members(group_id)
    expenses = list_expenses(group_id, currency)
    shares = list_expense_shares([e.id for e in expenses], {e.id: e.currency for e in expenses})
    payments = list_payments(group_id, currency)

    return GroupSnapshot(
        group_id=group_id,
        currency=currency,
        members=tuple(members),
        expenses=tuple(expenses),
        shares=tuple(shares),
        payments=tuple(payments),
    )


# ------------------------
# Ledger queries
# ------------------------
def compute_balances(group_id) -> List[Balance]:
    return service.compute_balances(load_snapshot(group_id))


def compute_settlement_plan(group_id) -> List[Settlement]:
    return service.compute_settlement_plan(load_snapshot(group_id))


def summarize_group(group_id) -> GroupSummary:
    return service.summarize(load_snapshot(group_id))


validate_expense_split = service.validate_expense_split


# ------------------------
# Writes
# ------------------------
def _active_member_ids(group_id: str) -> set:
    return {m.id for m in list_members(group_id)}


def _prepare_expense(
    group_id: str,
    payer_id: str,
    amount,
    currency: str,
    description: str,
    member_ids: List[str],
    how: str,
    values: Optional[Mapping[str, Any]],
) -> Tuple[Optional[str], Optional[ExpenseRecord], Dict[str, int]]:
    # Shared by add/update: (error message, draft expense, allocation)
    if not description:
        return "Description is empty", None, {}
    if not member_ids:
        return "Please select participants", None, {}

    try:
        ccy = normalize_currency(currency)
        expected = group_currency(group_id)
        if ccy != expected:
            return f"Invalid currency: {ccy} (group currency is {expected})", None, {}
        amount_minor = to_minor(amount, ccy)

        active_ids = _active_member_ids(group_id)
        if payer_id not in active_ids:
            return "Payer not found", None, {}
        if any(m not in active_ids for m in member_ids):
            return "Participants include members outside the group", None, {}

        alloc = allocate(how, amount_minor, member_ids, values)
    except (LedgerError, ValueError, ArithmeticError, RuntimeError) as e:
        return str(e), None, {}

    draft = ExpenseRecord(
        id="", group_id=group_id, payer_id=payer_id, amount=amount_minor, currency=ccy, description=description
    )
    result = validate_expense_split(draft, build_shares("", alloc))
    if not result.ok:
        return result.message(), None, {}
    return None, draft, alloc


def _share_rows(expense_id: str, alloc: Dict[str, int], currency: str) -> List[Dict[str, Any]]:
    return [
        {"expense_id": expense_id, "user_id": s.member_id, "share_amount": float(from_minor(s.amount, currency))}
        for s in build_shares(expense_id, alloc)
    ]


def add_expense(
    group_id,
    payer_id,
    amount,
    currency: str,
    description: str,
    member_ids: Sequence[str],
    how: str = "even",
    values: Optional[Mapping[str, Any]] = None,
    expense_date: Optional[date] = None,
) -> Tuple[bool, str]:
    """
    Insert an expense and its participant shares.
    `amount` is in major units; shares are built with settleup.splits and
    must pass validate_expense_split before anything is written.
    """
    sb = _sb()
    group_id = _norm_id(group_id)
    payer_id = _norm_id(payer_id)
    description = (description or "").strip()
    member_ids = [_norm_id(m) for m in member_ids or []]

    err, draft, alloc = _prepare_expense(group_id, payer_id, amount, currency, description, member_ids, how, values)
    if err is not None:
        return False, err
    ccy = draft.currency

    ex_resp = _execute_with_retry(
        sb.table("expenses").insert(
            {
                "group_id": group_id,
                "payer_id": payer_id,
                "amount": float(from_minor(draft.amount, ccy)),
                "currency": ccy,
                "description": description,
                "expense_date": (expense_date or date.today()).isoformat(),
            }
        )
    )
    ok, msg = _ok(ex_resp)
    if not ok:
        return False, f"Save failed: {msg}"
    if not ex_resp.data:
        return False, "Save failed"

    expense_id = _norm_id(ex_resp.data[0]["id"])
    sh_resp = _execute_with_retry(sb.table("expense_participants").insert(_share_rows(expense_id, alloc, ccy)))
    ok, msg = _ok(sh_resp)
    if not ok:
        # an expense without shares would be excluded from balances anyway
        _execute_with_retry(sb.table("expenses").update({"deleted_at": _now_iso()}).eq("id", expense_id))
        return False, f"Save failed: {msg}"

    return True, "Saved"


def update_expense(
    group_id,
    expense_id,
    payer_id,
    amount,
    currency: str,
    description: str,
    member_ids: Sequence[str],
    how: str = "even",
    values: Optional[Mapping[str, Any]] = None,
    expense_date: Optional[date] = None,
) -> Tuple[bool, str]:
    """
    Replace an active expense and its participant shares.

    The new split is validated before anything is written. If replacing the
    shares fails, the previous expense row and shares are written back so the
    stored expense still balances.
    """
    sb = _sb()
    group_id = _norm_id(group_id)
    expense_id = _norm_id(expense_id)
    payer_id = _norm_id(payer_id)
    description = (description or "").strip()
    member_ids = [_norm_id(m) for m in member_ids or []]

    err, draft, alloc = _prepare_expense(group_id, payer_id, amount, currency, description, member_ids, how, values)
    if err is not None:
        return False, err
    ccy = draft.currency

    fields = "payer_id,amount,currency,description,expense_date"
    try:
        old = _rows(
            sb.table("expenses")
            .select(fields)
            .eq("group_id", group_id)
            .eq("id", expense_id)
            .is_("deleted_at", "null")
            .limit(1)
        )
        if not old:
            return False, "Expense not found"
        old_shares = _rows(
            sb.table("expense_participants").select("expense_id,user_id,share_amount").eq("expense_id", expense_id)
        )
    except RuntimeError as e:
        return False, f"Update failed: {e}"
    old_row = {k: old[0].get(k) for k in fields.split(",")}

    new_row = {
        "payer_id": payer_id,
        "amount": float(from_minor(draft.amount, ccy)),
        "currency": ccy,
        "description": description,
    }
    if expense_date is not None:
        new_row["expense_date"] = expense_date.isoformat()

    # 1) expense row
    up = _execute_with_retry(
        sb.table("expenses").update(new_row).eq("group_id", group_id).eq("id", expense_id).is_("deleted_at", "null")
    )
    ok, msg = _ok(up)
    if not ok:
        return False, f"Update failed: {msg}"
    if not up.data:
        return False, "Expense not found"

    # 2) replace shares
    ok, msg = _replace_shares(expense_id, _share_rows(expense_id, alloc, ccy))
    if not ok:
        logger.warning("Share update failed for expense %s, restoring previous split: %s", expense_id, msg)
        _execute_with_retry(sb.table("expenses").update(old_row).eq("group_id", group_id).eq("id", expense_id))
        ok, rb_msg = _replace_shares(expense_id, old_shares)
        if not ok:
            logger.error("Could not restore the previous split of expense %s: %s", expense_id, rb_msg)
        return False, f"Update failed: {msg}"

    return True, "Updated"


def _replace_shares(expense_id: str, rows: List[Dict[str, Any]]) -> Tuple[bool, Optional[str]]:
    sb = _sb()
    resp = _execute_with_retry(sb.table("expense_participants").delete().eq("expense_id", expense_id))
    ok, msg = _ok(resp)
    if not ok:
        return False, msg
    if not rows:
        return True, None
    return _ok(_execute_with_retry(sb.table("expense_participants").insert(rows)))


def add_payment(
    group_id,
    payer_id,
    recipient_id,
    amount,
    currency: str,
    notes: str = "",
    payment_date: Optional[date] = None,
) -> Tuple[bool, str]:
    sb = _sb()
    group_id = _norm_id(group_id)
    payer_id = _norm_id(payer_id)
    recipient_id = _norm_id(recipient_id)

    if payer_id == recipient_id:
        return False, "Payer and recipient must be different"

    try:
        ccy = normalize_currency(currency)
        expected = group_currency(group_id)
        if ccy != expected:
            return False, f"Invalid currency: {ccy} (group currency is {expected})"
        amount_minor = to_minor(amount, ccy)
    except (LedgerError, ValueError, ArithmeticError, RuntimeError) as e:
        return False, str(e)

    if amount_minor <= 0:
        return False, "Invalid amount"

    active_ids = _active_member_ids(group_id)
    if payer_id not in active_ids or recipient_id not in active_ids:
        return False, "Member not found"

    payload = {
        "group_id": group_id,
        "payer_id": payer_id,
        "recipient_id": recipient_id,
        "amount": float(from_minor(amount_minor, ccy)),
        "currency": ccy,
        "payment_date": (payment_date or date.today()).isoformat(),
    }
    notes = (notes or "").strip()
    if notes:
        payload["notes"] = notes

    resp = _execute_with_retry(sb.table("payments").insert(payload))
    ok, msg = _ok(resp)
    if not ok:
        return False, f"Save failed: {msg}"
    return True, "Saved"


def record_settlement(group_id, settlement: Settlement) -> Tuple[bool, str]:
    # A settlement only changes balances once it is stored as a payment
    return add_payment(
        group_id,
        payer_id=settlement.payer_id,
        recipient_id=settlement.recipient_id,
        amount=from_minor(settlement.amount, settlement.currency),
        currency=settlement.currency,
        notes="Settle up",
    )


def _soft_delete(table: str, group_id, record_id, label: str) -> Tuple[bool, str]:
    sb = _sb()
    resp = _execute_with_retry(
        sb.table(table)
        .update({"deleted_at": _now_iso()})
        .eq("group_id", _norm_id(group_id))
        .eq("id", _norm_id(record_id))
        .is_("deleted_at", "null")
    )
    ok, msg = _ok(resp)
    if not ok:
        return False, f"Delete failed: {msg}"
    if not resp.data:
        return False, f"{label} not found"
    return True, "Deleted"


def soft_delete_expense(group_id, expense_id) -> Tuple[bool, str]:
    return _soft_delete("expenses", group_id, expense_id, "Expense")


def soft_delete_payment(group_id, payment_id) -> Tuple[bool, str]:
    return _soft_delete("payments", group_id, payment_id, "Payment")


# ------------------------
# Restore (undo soft delete)
# ------------------------
def _deleted_rows(table: str, columns: str, group_id) -> List[Dict[str, Any]]:
    sb = _sb()
    rows = _rows(
        sb.table(table).select(columns).eq("group_id", _norm_id(group_id)).order("deleted_at", desc=True)
    )
    return [r for r in rows if r.get("deleted_at") is not None]


def list_deleted_expenses(group_id) -> List[Dict]:
    return _deleted_rows("expenses", "id,payer_id,amount,currency,description,deleted_at", group_id)


def list_deleted_payments(group_id) -> List[Dict]:
    return _deleted_rows("payments", "id,payer_id,recipient_id,amount,currency,deleted_at", group_id)


def _find_deleted(table: str, columns: str, group_id: str, record_id: str) -> Optional[Dict[str, Any]]:
    sb = _sb()
    rows = _rows(sb.table(table).select(columns).eq("group_id", group_id).eq("id", record_id).limit(1))
    if not rows or rows[0].get("deleted_at") is None:
        return None
    return rows[0]


def _undelete(table: str, group_id: str, record_id: str) -> Tuple[bool, str]:
    sb = _sb()
    resp = _execute_with_retry(
        sb.table(table).update({"deleted_at": None}).eq("group_id", group_id).eq("id", record_id)
    )
    ok, msg = _ok(resp)
    if not ok:
        return False, f"Restore failed: {msg}"
    return True, "Restored"


def restore_expense(group_id, expense_id) -> Tuple[bool, str]:
    """
    Undo soft_delete_expense. Refused when the expense would no longer fit the
    group: another currency, or a payer/participant who has left.
    """
    sb = _sb()
    group_id = _norm_id(group_id)
    expense_id = _norm_id(expense_id)

    try:
        row = _find_deleted("expenses", "id,payer_id,currency,deleted_at", group_id, expense_id)
        if row is None:
            return False, "Expense not found"

        expected = group_currency(group_id)
        if str(row.get("currency") or "").upper().strip() != expected:
            return False, f"Cannot restore: currency {row.get('currency')} (group currency is {expected})"

        active_ids = _active_member_ids(group_id)
        if _norm_id(row["payer_id"]) not in active_ids:
            return False, "Cannot restore: payer is no longer a member"

        shares = _rows(sb.table("expense_participants").select("user_id").eq("expense_id", expense_id))
        if not shares:
            return False, "Cannot restore: no participants"
        if any(_norm_id(s["user_id"]) not in active_ids for s in shares):
            return False, "Cannot restore: participants include members outside the group"
    except RuntimeError as e:
        return False, f"Restore failed: {e}"

    return _undelete("expenses", group_id, expense_id)


def restore_payment(group_id, payment_id) -> Tuple[bool, str]:
    group_id = _norm_id(group_id)
    payment_id = _norm_id(payment_id)

    try:
        row = _find_deleted("payments", "id,payer_id,recipient_id,currency,deleted_at", group_id, payment_id)
        if row is None:
            return False, "Payment not found"

        expected = group_currency(group_id)
        if str(row.get("currency") or "").upper().strip() != expected:
            return False, f"Cannot restore: currency {row.get('currency')} (group currency is {expected})"

        active_ids = _active_member_ids(group_id)
        if _norm_id(row["payer_id"]) not in active_ids or _norm_id(row["recipient_id"]) not in active_ids:
            return False, "Cannot restore: payer or recipient is no longer a member"
    except RuntimeError as e:
        return False, f"Restore failed: {e}"

    return _undelete("payments", group_id, payment_id)
