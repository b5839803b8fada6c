# tests/test_dashboard.py
from conftest import USER_PASSWORD, add_tx, login
from weam.models import EXPENSE, INCOME
from weam.services.dashboard import (
    DashboardFilters,
    build_kpi,
    build_line_data,
    contractors_map,
    profit_by_project,
    profitability_by_project,
    top_by,
)


def _row(date, op, total, contractor="Acme", project="Tower", **extra):
    return {"date": date, "operationType": op, "total": total, "contractor": contractor, "project": project, **extra}


def test_kpi_plan_fact_total():
    fact = [_row("2024-01-01", INCOME, 200), _row("2024-01-02", EXPENSE, 50)]
    plan = [_row("", INCOME, 1000)]
    kpi = build_kpi(fact, plan)
    assert kpi["fact"] == {"income": 200, "expense": 50, "profit": 150, "profitability": 75.0}
    assert kpi["plan"]["income"] == 1000
    assert kpi["plan"]["profitability"] == 100.0
    assert kpi["total"] == kpi["fact"]


def test_profitability_is_zero_without_income():
    kpi = build_kpi([_row("2024-01-01", EXPENSE, 10)], [])
    assert kpi["fact"]["profitability"] == 0
    assert kpi["fact"]["profit"] == -10


def test_line_data_accumulates_per_date():
    rows = [
        _row("2024-01-02", EXPENSE, 30, note=""),
        _row("2024-01-01", INCOME, 100, section="A", note="first"),
        _row("2024-01-02", INCOME, 50, section="B"),
    ]
    points = build_line_data(rows)
    assert [p["date"] for p in points] == ["2024-01-01", "2024-01-02"]
    assert points[0]["incomeTotal"] == 100
    assert points[1]["incomeFact"] == 50
    assert points[1]["expenseFact"] == 30
    assert points[1]["profitTotal"] == 120
    assert points[1]["section"] == "B"
    assert points[0]["note"] == "first"
    assert points[1]["note"] is None


def test_top_lists_and_project_rankings():
    rows = [
        _row("d", INCOME, 100, contractor="A", project="P1"),
        _row("d", INCOME, 300, contractor="B", project="P2"),
        _row("d", EXPENSE, 90, contractor="A", project="P1"),
        _row("d", EXPENSE, 30, contractor="C", project="P2"),
    ]
    assert top_by(rows, "contractor", INCOME) == [{"name": "B", "value": 300}, {"name": "A", "value": 100}]
    assert [x["name"] for x in profit_by_project(rows)] == ["P2", "P1"]
    assert profitability_by_project(rows) == [
        {"name": "P1", "profitability": 10.0},
        {"name": "P2", "profitability": 90.0},
    ]


def test_contractors_map_sorts_projects_case_insensitively():
    rows = [
        {"contractor": "Acme", "project": "tower"},
        {"contractor": "Acme", "project": "Bridge"},
        {"contractor": "Zeta", "project": None},
    ]
    assert contractors_map(rows) == {"Acme": ["Bridge", "tower"], "Zeta": []}


def test_filters_from_query():
    f = DashboardFilters.from_query({"users": "1, x,2", "projects": "Tower,,Spire", "start": "2024-01-01"})
    assert f.user_ids == [1, 2]
    assert f.project_names == ["Tower", "Spire"]
    assert f.start == "2024-01-01"
    assert f.end is None


def test_dashboard_endpoint(admin_client, db, seed):
    pid = seed["project_id"]
    add_tx(db, project_id=pid, date="2024-01-10", total=400, operationType=INCOME)
    add_tx(db, project_id=pid, date="2024-01-12", total=100, operationType=EXPENSE)
    add_tx(db, project_id=pid, date="", total=1000, operationType=INCOME)
    add_tx(db, project_id=pid, date="2024-01-11", total=70, operationType=EXPENSE, responsible="admin")

    data = admin_client.get("/api/dashboard").json()
    assert set(data) == {
        "contractorsMap",
        "allUsers",
        "kpi",
        "lineData",
        "topIncomeClients",
        "topExpenseContractors",
        "profitByProject",
        "profitabByProject",
        "userSummary",
    }
    assert data["contractorsMap"] == {"Acme": ["Tower"]}
    assert data["allUsers"] == [seed["admin_id"], seed["user_id"]]
    assert data["kpi"]["fact"]["income"] == 400
    assert data["kpi"]["fact"]["expense"] == 170
    assert data["kpi"]["plan"]["income"] == 1000
    assert [p["date"] for p in data["lineData"]] == ["2024-01-10", "2024-01-11", "2024-01-12"]

    summary = {s["userId"]: s for s in data["userSummary"]}
    assert summary[seed["user_id"]]["income"] == 100
    assert summary[seed["user_id"]]["balance"] == 900
    assert summary[seed["admin_id"]]["income"] == 70

    # date range only narrows actual rows
    data = admin_client.get("/api/dashboard", params={"start": "2024-01-11", "end": "2024-01-11"}).json()
    assert data["kpi"]["fact"] == {"income": 0, "expense": 70, "profit": -70, "profitability": 0}
    assert data["kpi"]["plan"]["income"] == 1000


def test_dashboard_is_scoped_for_users(admin_client, db, seed):
    pid = seed["project_id"]
    add_tx(db, project_id=pid, date="2024-01-10", total=400, operationType=INCOME)
    add_tx(db, project_id=pid, date="2024-01-11", total=70, operationType=EXPENSE, responsible="admin")

    login(admin_client, "alice", USER_PASSWORD)
    data = admin_client.get("/api/dashboard").json()
    assert data["allUsers"] == [seed["user_id"]]
    assert data["kpi"]["fact"]["expense"] == 0
    assert data["kpi"]["fact"]["income"] == 400
