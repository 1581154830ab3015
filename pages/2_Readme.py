# pages/2_Readme.py
import streamlit as st

# Page config
st.set_page_config(page_title="Readme", layout="wide")

st.title("Readme")

st.markdown(
    """
### What this app does
- Shows what every member of a group owes or is owed
- Suggests a short list of transfers that settles everyone up
- Records expenses (even, percent, shares or exact split) and payments

### How balances are calculated
- The payer of an expense is credited the full amount
- Every participant is debited their share (the payer too, if they took part)
- A payment moves the payer's balance up and the recipient's down by the
  amount paid, so paying off a debt brings both back toward zero
- Amounts are kept in whole cents (or the currency's smallest unit), so
  balances always add up to exactly zero

### About the settle up plan
- The plan repeatedly matches the member who is owed the most with the
  member who owes the most
- It never needs more transfers than one fewer than the number of members
  with a balance
- It is a fast rule of thumb, **not** a guaranteed minimum: in some groups a
  cleverer plan could use one or two fewer transfers
- A suggested transfer only counts once it is marked done (recorded as a payment)

### Notes
- Every group uses a single currency; expenses and payments in another
  currency are rejected
- If an expense's shares do not add up to its total it is left out of the
  balances and flagged on the group page
"""
)

# Back to main
if st.button("Back to Main"):
    st.switch_page("main.py")
