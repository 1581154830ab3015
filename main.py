# main.py
import logging

import streamlit as st

import db

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# --------------------------------------------------
# App configuration and DB initialization
# --------------------------------------------------
st.set_page_config(page_title="SettleUp", layout="wide")
db.init_db()

st.title("SettleUp")

if st.button("Readme"):
    st.switch_page("pages/2_Readme.py")

# --------------------------------------------------
# Session state initialization
# --------------------------------------------------
if "group_id" not in st.session_state:
    st.session_state["group_id"] = None

# ==================================================
# Open a group
# ==================================================
st.subheader("Open a group")

groups = db.list_groups()
if not groups:
    st.info("No groups yet.")
    st.stop()

# --------------------------------------------------
# Build group label list for selectbox
# --------------------------------------------------
group_label_to_id = {}
labels = []

for g in groups:
    gid = str(g["id"])
    ccy = (g.get("primary_currency") or "USD").upper()
    label = f'{g["name"]} ({ccy})'
    # Same name + currency twice: keep both selectable
    if label in group_label_to_id:
        label = f"{label} [{gid[:8]}]"
    labels.append(label)
    group_label_to_id[label] = gid

selected_label = st.selectbox("Select group", labels)
selected_id = group_label_to_id[selected_label]

if st.button("Go to group"):
    st.session_state["group_id"] = selected_id
    st.query_params["group_id"] = str(selected_id)
    st.switch_page("pages/1_App.py")
