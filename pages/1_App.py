# pages/1_App.py

# ----------------------------------------
# Imports
# ----------------------------------------
import logging
from datetime import date

import streamlit as st

import db
from settleup.errors import LedgerError
from settleup import service
from settleup.money import format_money, from_minor, quant_unit, to_minor
from settleup.report import balances_frame, build_net_matrix, settlements_frame

logger = logging.getLogger(__name__)

# ----------------------------------------
# Streamlit page config + DB init
# ----------------------------------------
st.set_page_config(page_title="SettleUp", layout="wide")
db.init_db()

# ----------------------------------------
# Restore group_id from URL (so /App?group_id=... works)
# ----------------------------------------
qp_group_id = st.query_params.get("group_id", None)

if st.session_state.get("group_id") is None and qp_group_id:
    st.session_state["group_id"] = str(qp_group_id)

if st.session_state.get("group_id") is None:
    st.warning("No group selected. Go back to the main page.")
    if st.button("Back to main"):
        st.switch_page("main.py")
    st.stop()

GROUP_ID = str(st.session_state["group_id"])

# Keep URL in sync for refresh / revisit
st.query_params["group_id"] = GROUP_ID

group_row = db.get_group(GROUP_ID)
if group_row is None:
    st.error("Group not found or has been deleted.")
    st.stop()

CCY = (group_row.get("primary_currency") or "USD").upper()
STEP = float(quant_unit(CCY))

st.title(f"{group_row['name']}")

members = db.list_members(GROUP_ID)
id_to_name = {m.id: (m.display_name or m.id) for m in members}
member_ids = [m.id for m in members]

# ----------------------------------------
# Layout columns
# ----------------------------------------
left, right = st.columns([1, 2])

# ----------------------------------------
# Left: Add expense + Record payment
# ----------------------------------------
with left:
    st.subheader("Add expense")

    if not members:
        st.write("No members.")
    else:
        how = st.radio("Split", ["even", "%", "shares", "$"], horizontal=True, key=f"how_{GROUP_ID}")

        with st.form(f"add_expense_form_{GROUP_ID}", clear_on_submit=True):
            description = st.text_input("Description")
            amount = st.number_input(f"Amount ({CCY})", min_value=0.0, step=STEP)
            payer = st.selectbox("Paid by", member_ids, format_func=lambda mid: id_to_name.get(mid, mid))
            targets = st.multiselect(
                "Split between", member_ids, default=member_ids, format_func=lambda mid: id_to_name.get(mid, mid)
            )

            values = {}
            if how != "even":
                st.caption({"%": "Percent per member", "shares": "Shares per member", "$": "Amount per member"}[how])
                for mid in member_ids:
                    label = id_to_name.get(mid, mid)
                    if how == "$":
                        v = st.number_input(label, min_value=0.0, step=STEP, key=f"val_{GROUP_ID}_{mid}")
                        values[mid] = to_minor(v, CCY)
                    elif how == "%":
                        values[mid] = st.number_input(label, min_value=0.0, max_value=100.0, key=f"val_{GROUP_ID}_{mid}")
                    else:
                        values[mid] = int(st.number_input(label, min_value=0, step=1, key=f"val_{GROUP_ID}_{mid}"))

            submitted = st.form_submit_button("Add")
            if submitted:
                ok, msg = db.add_expense(
                    GROUP_ID,
                    payer_id=payer,
                    amount=amount,
                    currency=CCY,
                    description=description,
                    member_ids=targets,
                    how=how,
                    values=values,
                    expense_date=date.today(),
                )
                if ok:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

    st.divider()
    st.subheader("Record payment")

    if len(members) < 2:
        st.write("Need at least two members.")
    else:
        with st.form(f"add_payment_form_{GROUP_ID}", clear_on_submit=True):
            p_from = st.selectbox("From", member_ids, format_func=lambda mid: id_to_name.get(mid, mid))
            p_to = st.selectbox("To", member_ids, index=1, format_func=lambda mid: id_to_name.get(mid, mid))
            p_amount = st.number_input(f"Amount ({CCY})", min_value=0.0, step=STEP, key=f"pay_amt_{GROUP_ID}")
            if st.form_submit_button("Record"):
                ok, msg = db.add_payment(GROUP_ID, p_from, p_to, p_amount, CCY)
                if ok:
                    st.success(msg)
                    st.rerun()
                else:
                    st.error(msg)

# ----------------------------------------
# Right: Summary -> Settle up -> Transaction detail
# ----------------------------------------
with right:
    try:
        snapshot = db.load_snapshot(GROUP_ID)
        summary = service.summarize(snapshot)
    except LedgerError:
        logger.exception("Balances could not be calculated for group %s", GROUP_ID)
        st.error("Balances could not be calculated. The problem has been logged.")
        st.stop()

    # ------------------------
    # Summary
    # ------------------------
    st.subheader("Summary")

    if summary.warnings:
        st.warning(
            f"{len(summary.warnings)} record(s) are inconsistent and were left out of the balances: "
            + ", ".join(f"{w.record_kind} {w.record_id}" for w in summary.warnings)
        )

    df_bal = balances_frame(summary.balances)
    st.dataframe(df_bal.drop(columns=["_amt_num"]), use_container_width=True, hide_index=True)

    # ------------------------
    # Settle up
    # ------------------------
    st.divider()
    st.subheader("Settle up")

    if not summary.settlements:
        st.success("Everyone is settled up.")
    else:
        st.caption("Suggested transfers (greedy plan, at most one fewer than the number of members with a balance).")
        df_settle = settlements_frame(summary.settlements)
        st.dataframe(df_settle.drop(columns=["_amt_num"]), use_container_width=True, hide_index=True)

        for i, s in enumerate(summary.settlements):
            label = f"{s.payer_name} paid {s.recipient_name} {format_money(s.amount, s.currency)} {s.currency}"
            if st.button(f"Mark done: {label}", key=f"settle_{GROUP_ID}_{i}"):
                ok, msg = db.record_settlement(GROUP_ID, s)
                if ok:
                    st.rerun()
                else:
                    st.error(msg)

    # ------------------------
    # Transaction detail
    # ------------------------
    st.divider()
    with st.expander("Transaction detail", expanded=False):
        df_net = build_net_matrix(snapshot)
        if df_net.empty:
            st.write("No transactions.")
        else:
            st.dataframe(df_net, use_container_width=True, hide_index=True)
            st.download_button(
                "Download CSV",
                data=df_net.to_csv(index=False).encode("utf-8"),
                file_name=f"transactions_{GROUP_ID}.csv",
                mime="text/csv",
            )

    # ------------------------
    # History (delete)
    # ------------------------
    with st.expander("History", expanded=False):
        for e in reversed(snapshot.expenses):
            c1, c2 = st.columns([4, 1])
            c1.write(
                f"{e.description}: {format_money(e.amount, e.currency)} {e.currency} "
                f"paid by {id_to_name.get(e.payer_id, e.payer_id)}"
            )
            if c2.button("Delete", key=f"del_exp_{e.id}"):
                ok, msg = db.soft_delete_expense(GROUP_ID, e.id)
                if ok:
                    st.rerun()
                else:
                    st.error(msg)

        for p in reversed(snapshot.payments):
            c1, c2 = st.columns([4, 1])
            c1.write(
                f"Payment: {id_to_name.get(p.payer_id, p.payer_id)} -> {id_to_name.get(p.recipient_id, p.recipient_id)} "
                f"{format_money(p.amount, p.currency)} {p.currency}"
            )
            if c2.button("Delete", key=f"del_pay_{p.id}"):
                ok, msg = db.soft_delete_payment(GROUP_ID, p.id)
                if ok:
                    st.rerun()
                else:
                    st.error(msg)

    # ------------------------
    # Edit expense
    # ------------------------
    with st.expander("Edit expense", expanded=False):
        if not snapshot.expenses or not members:
            st.write("No expenses.")
        else:
            by_id = {e.id: e for e in snapshot.expenses}
            edit_id = st.selectbox(
                "Expense",
                [e.id for e in reversed(snapshot.expenses)],
                format_func=lambda eid: f"{by_id[eid].description} ({format_money(by_id[eid].amount, CCY)} {CCY})",
                key=f"edit_pick_{GROUP_ID}",
            )
            ex = by_id[edit_id]
            current = {s.member_id: s.amount for s in snapshot.shares if s.expense_id == ex.id}
            edit_how = st.radio("Split", ["even", "$"], horizontal=True, key=f"edit_how_{GROUP_ID}_{ex.id}")

            with st.form(f"edit_expense_form_{GROUP_ID}_{ex.id}"):
                e_desc = st.text_input("Description", value=ex.description, key=f"edit_desc_{ex.id}")
                e_amount = st.number_input(
                    f"Amount ({CCY})", min_value=0.0, step=STEP, value=float(from_minor(ex.amount, CCY)), key=f"edit_amt_{ex.id}"
                )
                e_payer = st.selectbox(
                    "Paid by",
                    member_ids,
                    index=member_ids.index(ex.payer_id) if ex.payer_id in member_ids else 0,
                    format_func=lambda mid: id_to_name.get(mid, mid),
                    key=f"edit_payer_{ex.id}",
                )
                e_targets = st.multiselect(
                    "Split between",
                    member_ids,
                    default=[mid for mid in member_ids if mid in current],
                    format_func=lambda mid: id_to_name.get(mid, mid),
                    key=f"edit_targets_{ex.id}",
                )
                e_values = {}
                if edit_how == "$":
                    for mid in member_ids:
                        v = st.number_input(
                            id_to_name.get(mid, mid),
                            min_value=0.0,
                            step=STEP,
                            value=float(from_minor(current.get(mid, 0), CCY)),
                            key=f"edit_val_{ex.id}_{mid}",
                        )
                        e_values[mid] = to_minor(v, CCY)

                if st.form_submit_button("Save changes"):
                    ok, msg = db.update_expense(
                        GROUP_ID,
                        ex.id,
                        payer_id=e_payer,
                        amount=e_amount,
                        currency=CCY,
                        description=e_desc,
                        member_ids=e_targets,
                        how=edit_how,
                        values=e_values,
                    )
                    if ok:
                        st.success(msg)
                        st.rerun()
                    else:
                        st.error(msg)

    # ------------------------
    # Deleted (restore)
    # ------------------------
    with st.expander("Deleted", expanded=False):
        deleted_expenses = db.list_deleted_expenses(GROUP_ID)
        deleted_payments = db.list_deleted_payments(GROUP_ID)
        if not deleted_expenses and not deleted_payments:
            st.write("Nothing deleted.")

        for r in deleted_expenses:
            c1, c2 = st.columns([4, 1])
            c1.write(f"{r.get('description') or ''}: {r['amount']} {r['currency']}")
            if c2.button("Restore", key=f"res_exp_{r['id']}"):
                ok, msg = db.restore_expense(GROUP_ID, r["id"])
                if ok:
                    st.rerun()
                else:
                    st.error(msg)

        for r in deleted_payments:
            c1, c2 = st.columns([4, 1])
            c1.write(
                f"Payment: {id_to_name.get(str(r['payer_id']), r['payer_id'])} -> "
                f"{id_to_name.get(str(r['recipient_id']), r['recipient_id'])} {r['amount']} {r['currency']}"
            )
            if c2.button("Restore", key=f"res_pay_{r['id']}"):
                ok, msg = db.restore_payment(GROUP_ID, r["id"])
                if ok:
                    st.rerun()
                else:
                    st.error(msg)

if st.button("Back to main"):
    st.switch_page("main.py")
