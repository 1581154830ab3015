import pytest

from fake_supabase import FakeClientFactory, FakeSupabase


def _ts(n):
    return f"2025-01-0{n}T12:00:00+00:00"


@pytest.fixture
def seed_tables():
    # Scenario A stored the way Supabase returns it: NUMERIC as floats/strings
    return {
        "groups": [
            {"id": "g1", "name": "Trip", "primary_currency": "USD", "deleted_at": None},
            {"id": "g2", "name": "Old", "primary_currency": "EUR", "deleted_at": _ts(1)},
        ],
        "group_members": [
            {"group_id": "g1", "user_id": "a"},
            {"group_id": "g1", "user_id": "b"},
            {"group_id": "g1", "user_id": "c"},
        ],
        "users": [
            {"id": "a", "display_name": "Alice", "deleted_at": None},
            {"id": "b", "display_name": "bob", "deleted_at": None},
            {"id": "c", "display_name": "Carol", "deleted_at": None},
        ],
        "expenses": [
            {
                "id": "e1",
                "group_id": "g1",
                "payer_id": "a",
                "amount": 120.0,
                "currency": "USD",
                "description": "Dinner",
                "created_at": _ts(2),
                "deleted_at": None,
            },
            {
                "id": "e0",
                "group_id": "g1",
                "payer_id": "b",
                "amount": "50.00",
                "currency": "USD",
                "description": "Deleted",
                "created_at": _ts(1),
                "deleted_at": _ts(3),
            },
        ],
        "expense_participants": [
            {"expense_id": "e1", "user_id": "a", "share_amount": 40.0},
            {"expense_id": "e1", "user_id": "b", "share_amount": "40.00"},
            {"expense_id": "e1", "user_id": "c", "share_amount": 40},
            {"expense_id": "e0", "user_id": "a", "share_amount": 50.0},
        ],
        "payments": [],
    }


@pytest.fixture
def fake_sb(monkeypatch, seed_tables):
    import db

    client = FakeSupabase(seed_tables)
    factory = FakeClientFactory(client)
    monkeypatch.setattr(db, "_sb", factory)
    monkeypatch.setattr(db.time, "sleep", lambda s: None)
    return factory
