# tests/test_transactions.py
import pytest

from conftest import USER_PASSWORD, add_tx, login
from weam.models import EXPENSE, INCOME
from weam.services.transactions import normalize_tx_input


@pytest.fixture()
def ledger(db, seed):
    pid = seed["project_id"]
    return {
        "planned": add_tx(db, project_id=pid, date="", total=500, operationType=INCOME),
        "old_income": add_tx(db, project_id=pid, date="2024-01-05", total=100, operationType=INCOME),
        "new_income": add_tx(db, project_id=pid, date="2024-03-01", total=300, operationType=INCOME),
        "expense": add_tx(db, project_id=pid, date="2024-02-10", total=80, operationType=EXPENSE),
        "admins": add_tx(db, project_id=pid, date="2024-02-11", total=999, operationType=INCOME, responsible="admin"),
    }


def test_list_orders_planned_first_then_newest(admin_client, ledger):
    ids = [r["id"] for r in admin_client.get("/api/transactions").json()]
    assert ids == [
        ledger["planned"],
        ledger["new_income"],
        ledger["admins"],
        ledger["expense"],
        ledger["old_income"],
    ]


def test_user_sees_only_own_transactions(user_client, ledger):
    rows = user_client.get("/api/transactions").json()
    assert ledger["admins"] not in [r["id"] for r in rows]
    assert {r["responsible"] for r in rows} == {"alice"}


def test_query_actual_income(admin_client, ledger):
    r = admin_client.get("/api/transactions/query", params={"op": "income", "plan": "actual"})
    ids = [row["id"] for row in r.json()["rows"]]
    assert ids == [ledger["new_income"], ledger["admins"], ledger["old_income"]]


def test_query_date_range_and_amounts(admin_client, ledger):
    r = admin_client.get(
        "/api/transactions/query",
        params={"start": "2024-02-01", "end": "2024-02-28", "min": "50", "max": "500"},
    )
    assert [row["id"] for row in r.json()["rows"]] == [ledger["expense"]]


def test_query_planned(admin_client, ledger):
    r = admin_client.get("/api/transactions/query", params={"plan": "planned"})
    assert [row["id"] for row in r.json()["rows"]] == [ledger["planned"]]


def test_account_filter_is_admin_only(admin_client, ledger):
    r = admin_client.get("/api/transactions/query", params={"account": "admin"})
    assert [row["id"] for row in r.json()["rows"]] == [ledger["admins"]]

    login(admin_client, "alice", USER_PASSWORD)
    r = admin_client.get("/api/transactions/query", params={"account": "admin"})
    rows = r.json()["rows"]
    assert rows and all(row["responsible"] == "alice" for row in rows)


def test_create_transaction_defaults_remainder_to_total(admin_client, seed):
    r = admin_client.post(
        "/api/transactions",
        json={
            "operationType": EXPENSE,
            "total": "120.5",
            "responsible": "alice",
            "project_id": seed["project_id"],
            "date": "2024-05-01",
        },
    )
    assert r.status_code == 201
    row = r.json()
    assert row["total"] == 120.5
    assert row["remainder"] == 120.5
    assert row["note"] == ""


@pytest.mark.parametrize(
    "body, message",
    [
        ({"operationType": "Gift", "total": 1, "responsible": "a", "project_id": 1}, 'operationType must be "Доход" or "Расход"'),
        ({"operationType": INCOME, "total": "abc", "responsible": "a", "project_id": 1}, "total must be a number"),
        ({"operationType": INCOME, "total": 1, "project_id": 1}, "responsible is required"),
        ({"operationType": INCOME, "total": 1, "responsible": "a"}, "project_id is required"),
        ({"operationType": INCOME, "total": 1, "responsible": "a", "project_id": 1, "date": "2024/01/01"}, "Invalid date format (YYYY-MM-DD or empty)"),
    ],
)
def test_create_validation(admin_client, seed, body, message):
    r = admin_client.post("/api/transactions", json=body)
    assert r.status_code == 400
    assert r.json() == {"error": message}


def test_create_with_unknown_project_is_400(admin_client, seed):
    r = admin_client.post(
        "/api/transactions",
        json={"operationType": INCOME, "total": 1, "responsible": "a", "project_id": 9999},
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid foreign key (project_id)"}


def test_update_and_delete(admin_client, ledger):
    tx_id = ledger["planned"]
    r = admin_client.put(f"/api/transactions/{tx_id}", json={"date": "2024-06-01", "note": "paid"})
    assert r.status_code == 200
    assert r.json()["date"] == "2024-06-01"
    assert r.json()["note"] == "paid"

    r = admin_client.put(f"/api/transactions/{tx_id}", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "No fields to update"}

    r = admin_client.put("/api/transactions/9999", json={"note": "x"})
    assert r.status_code == 404
    assert r.json() == {"error": "Nothing updated"}

    assert admin_client.delete(f"/api/transactions/{tx_id}").json() == {"deleted": True}
    assert admin_client.delete(f"/api/transactions/{tx_id}").json() == {"deleted": False}


def test_user_cannot_write_transactions(user_client, ledger):
    assert user_client.delete(f"/api/transactions/{ledger['expense']}").status_code == 403


def test_normalize_without_remainder_column():
    patch, error = normalize_tx_input(
        {"operationType": INCOME, "total": 10, "responsible": "a", "project_id": 1},
        for_create=True,
        has_remainder=False,
    )
    assert error is None
    assert "remainder" not in patch
    assert patch["date"] == ""


def test_normalize_update_keeps_untouched_fields_out():
    patch, error = normalize_tx_input({"note": "x"}, for_create=False, has_remainder=True)
    assert error is None
    assert patch == {"note": "x"}
