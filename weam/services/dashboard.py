# weam/services/dashboard.py
"""
Dashboard summary.

The SQL part only fetches rows (actual vs planned transactions, projects,
per-user totals); everything else is plain aggregation in Python:

- kpi            plan/fact/total income, expense, profit, profitability (%)
- lineData       per-date actual totals with running cumulative sums
- top lists      top-10 income clients, expense contractors, profit by project
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy import func, or_, select
from sqlmodel import Session

from weam.models import EXPENSE, INCOME, Project, Transaction, User
from weam.security import AuthUser
from weam.validation import clamp_str, is_non_empty_str, parse_list

TOP_N = 10

transactions = Transaction.__table__
projects = Project.__table__
users = User.__table__


@dataclass
class DashboardFilters:
    start: Optional[str] = None
    end: Optional[str] = None
    user_ids: List[int] = field(default_factory=list)
    project_names: List[str] = field(default_factory=list)

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "DashboardFilters":
        user_ids = []
        for item in parse_list(params.get("users")):
            try:
                user_ids.append(int(item))
            except ValueError:
                continue
        return cls(
            start=clamp_str(params.get("start")) or None,
            end=clamp_str(params.get("end")) or None,
            user_ids=user_ids,
            project_names=parse_list(params.get("projects")),
        )


# ---------- pure aggregation ----------


def _amount(row: Mapping[str, Any]) -> float:
    try:
        return float(row.get("total") or 0)
    except (TypeError, ValueError):
        return 0.0


def sum_by(rows: Iterable[Mapping[str, Any]], op: str) -> float:
    return sum(_amount(r) for r in rows if r.get("operationType") == op)


def profitability(income: float, expense: float) -> float:
    return (income - expense) / income * 100 if income > 0 else 0


def kpi_block(income: float, expense: float) -> Dict[str, float]:
    return {
        "income": income,
        "expense": expense,
        "profit": income - expense,
        "profitability": profitability(income, expense),
    }


def build_kpi(fact_rows, plan_rows) -> Dict[str, Dict[str, float]]:
    fact = kpi_block(sum_by(fact_rows, INCOME), sum_by(fact_rows, EXPENSE))
    plan = kpi_block(sum_by(plan_rows, INCOME), sum_by(plan_rows, EXPENSE))
    return {"plan": plan, "fact": fact, "total": dict(fact)}


def build_line_data(fact_rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """One point per actual date; project/section/note keep the last non-empty value."""
    by_date: Dict[str, Dict[str, Any]] = {}
    for r in fact_rows:
        d = str(r.get("date"))
        m = by_date.setdefault(
            d,
            {"incomeFact": 0.0, "expenseFact": 0.0, "project": None, "section": None, "note": None},
        )
        if r.get("operationType") == INCOME:
            m["incomeFact"] += _amount(r)
        else:
            m["expenseFact"] += _amount(r)
        for key in ("project", "section", "note"):
            if is_non_empty_str(r.get(key)):
                m[key] = r[key]

    points = []
    inc_cum = exp_cum = 0.0
    for d in sorted(by_date):
        m = by_date[d]
        inc_cum += m["incomeFact"]
        exp_cum += m["expenseFact"]
        points.append(
            {
                "date": d,
                "incomePlan": 0,
                "expensePlan": 0,
                "profitPlan": 0,
                "incomeFact": m["incomeFact"],
                "expenseFact": m["expenseFact"],
                "profitFact": m["incomeFact"] - m["expenseFact"],
                "incomeTotal": inc_cum,
                "expenseTotal": exp_cum,
                "profitTotal": inc_cum - exp_cum,
                "project": m["project"],
                "section": m["section"],
                "note": m["note"],
            }
        )
    return points


def top_by(rows, key: str, op: str, limit: int = TOP_N) -> List[Dict[str, Any]]:
    totals: Dict[str, float] = {}
    for r in rows:
        if r.get("operationType") != op:
            continue
        name = clamp_str(r.get(key) or "")
        totals[name] = totals.get(name, 0) + _amount(r)
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [{"name": n, "value": v} for n, v in ranked[:limit]]


def _by_project(rows) -> Dict[str, Dict[str, float]]:
    out: Dict[str, Dict[str, float]] = {}
    for r in rows:
        item = out.setdefault(clamp_str(r.get("project") or ""), {"income": 0.0, "expense": 0.0})
        if r.get("operationType") == INCOME:
            item["income"] += _amount(r)
        else:
            item["expense"] += _amount(r)
    return out


def profit_by_project(rows, limit: int = TOP_N) -> List[Dict[str, Any]]:
    items = [
        {"name": n, "profit": v["income"] - v["expense"]}
        for n, v in _by_project(rows).items()
    ]
    items.sort(key=lambda x: x["profit"], reverse=True)
    return items[:limit]


def profitability_by_project(rows, limit: int = TOP_N) -> List[Dict[str, Any]]:
    """Lowest profitability first (the dashboard flags weak projects)."""
    items = [
        {"name": n, "profitability": round(profitability(v["income"], v["expense"]), 2)}
        for n, v in _by_project(rows).items()
    ]
    items.sort(key=lambda x: x["profitability"])
    return items[:limit]


def contractors_map(rows) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for r in rows:
        projects_of = out.setdefault(r["contractor"], [])
        if r["project"] and r["project"] not in projects_of:
            projects_of.append(r["project"])
    for names in out.values():
        names.sort(key=str.casefold)
    return out


# ---------- queries ----------


def _allowed_logins(session: Session, user_ids: List[int]) -> List[str]:
    if not user_ids:
        return []
    stmt = select(users.c.login).where(users.c.id.in_(user_ids))
    return list(session.execute(stmt).scalars().all())


def _tx_conditions(t, p, user: AuthUser, logins: List[str], f: DashboardFilters, actual: bool):
    conds = [t.c.date != ""] if actual else [t.c.date == ""]
    if not user.is_admin:
        conds.append(t.c.responsible == user.login)
    if logins:
        conds.append(t.c.responsible.in_(logins))
    if actual and f.start:
        conds.append(t.c.date >= f.start)
    if actual and f.end:
        conds.append(t.c.date <= f.end)
    if f.project_names:
        conds.append(p.c.project.in_(f.project_names))
    return conds


def _project_conditions(p, user: AuthUser, f: DashboardFilters):
    conds = []
    if not user.is_admin:
        conds.append(p.c.user_id == user.user_id)
    if f.user_ids:
        conds.append(p.c.user_id.in_(f.user_ids))
    if f.project_names:
        conds.append(p.c.project.in_(f.project_names))
    return conds


def _tx_rows(
    session: Session, conds_for, tx_columns: Set[str], actual: bool
) -> List[Dict[str, Any]]:
    t = transactions.alias("t")
    p = projects.alias("p")
    cols = [c for c in t.c if c.name in tx_columns]
    cols += [p.c.contractor, p.c.project]
    if actual:
        cols.append(p.c.section)
    stmt = (
        select(*cols)
        .select_from(t.outerjoin(p, p.c.id == t.c.project_id))
        .where(*conds_for(t, p, actual))
    )
    if actual:
        stmt = stmt.order_by(t.c.date, t.c.id)
    return [dict(r) for r in session.execute(stmt).mappings().all()]


def _user_summary(session: Session, conds_for, user: AuthUser, f: DashboardFilters):
    """Per user: actual expenses (reported as `income`) and contracts minus expenses."""
    t = transactions.alias("t")
    p = projects.alias("p")
    u_inner = users.alias("u_inner")
    user_expenses = (
        select(u_inner.c.id.label("user_id"), func.sum(t.c.total).label("total_expense"))
        .select_from(
            t.join(u_inner, t.c.responsible == u_inner.c.login).outerjoin(
                p, p.c.id == t.c.project_id
            )
        )
        .where(*conds_for(t, p, True), t.c.operationType == EXPENSE)
        .group_by(u_inner.c.id)
        .subquery("user_expenses")
    )

    p2 = projects.alias("p2")
    user_contracts = (
        select(p2.c.user_id, func.sum(p2.c.amount).label("total_contract_amount"))
        .where(*_project_conditions(p2, user, f))
        .group_by(p2.c.user_id)
        .subquery("user_contracts")
    )

    expense = func.coalesce(user_expenses.c.total_expense, 0)
    contracts = func.coalesce(user_contracts.c.total_contract_amount, 0)
    stmt = (
        select(
            users.c.id.label("userId"),
            expense.label("income"),
            (contracts - expense).label("balance"),
        )
        .select_from(
            users.outerjoin(user_expenses, users.c.id == user_expenses.c.user_id).outerjoin(
                user_contracts, users.c.id == user_contracts.c.user_id
            )
        )
        .where(
            or_(
                user_expenses.c.user_id.is_not(None),
                user_contracts.c.user_id.is_not(None),
            )
        )
        .order_by(users.c.id)
    )
    return [dict(r) for r in session.execute(stmt).mappings().all()]


def build_dashboard(
    session: Session, user: AuthUser, f: DashboardFilters, tx_columns: Set[str]
) -> Dict[str, Any]:
    logins = _allowed_logins(session, f.user_ids)

    def conds_for(t, p, actual):
        return _tx_conditions(t, p, user, logins, f, actual)

    fact_rows = _tx_rows(session, conds_for, tx_columns, actual=True)
    plan_rows = _tx_rows(session, conds_for, tx_columns, actual=False)

    p = projects.alias("p")
    proj_stmt = select(p.c.contractor, p.c.project).distinct()
    if not user.is_admin:
        proj_stmt = proj_stmt.where(p.c.user_id == user.user_id)
    proj_rows = session.execute(proj_stmt).mappings().all()

    if user.is_admin:
        all_users = list(
            session.execute(select(users.c.id).order_by(users.c.id)).scalars().all()
        )
    else:
        all_users = [user.user_id]

    return {
        "contractorsMap": contractors_map(proj_rows),
        "allUsers": all_users,
        "kpi": build_kpi(fact_rows, plan_rows),
        "lineData": build_line_data(fact_rows),
        "topIncomeClients": top_by(fact_rows, "contractor", INCOME),
        "topExpenseContractors": top_by(fact_rows, "contractor", EXPENSE),
        "profitByProject": profit_by_project(fact_rows),
        "profitabByProject": profitability_by_project(fact_rows),
        "userSummary": _user_summary(session, conds_for, user, f),
    }
