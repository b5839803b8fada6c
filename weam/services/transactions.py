# weam/services/transactions.py
"""
Transaction queries and input normalization.

Older databases have no `remainder` column, so every query selects only
the columns in `Database.tx_columns`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy import case, delete, insert, select, update
from sqlmodel import Session

from weam.models import EXPENSE, INCOME, OPERATION_TYPES, Transaction
from weam.security import AuthUser
from weam.validation import (
    clamp_date_str,
    clamp_str,
    is_non_empty_str,
    to_int_or_none,
    to_number_or_none,
)

transactions = Transaction.__table__

OP_FILTERS = {"income": INCOME, "expense": EXPENSE}


def _columns(tx_columns: Set[str]):
    # Never select a column the live database does not have.
    return [c for c in transactions.c if c.name in tx_columns]


def _ordered(stmt):
    # planned rows first, then newest actual rows
    return stmt.order_by(
        case((transactions.c.date == "", 0), else_=1),
        transactions.c.date.desc(),
        transactions.c.id.desc(),
    )


def _rows(session: Session, stmt) -> List[Dict[str, Any]]:
    return [dict(r) for r in session.execute(stmt).mappings().all()]


def list_transactions(
    session: Session, user: AuthUser, tx_columns: Set[str]
) -> List[Dict[str, Any]]:
    stmt = select(*_columns(tx_columns))
    if not user.is_admin:
        stmt = stmt.where(transactions.c.responsible == user.login)
    return _rows(session, _ordered(stmt))


def query_transactions(
    session: Session,
    user: AuthUser,
    tx_columns: Set[str],
    params: Mapping[str, Any],
) -> List[Dict[str, Any]]:
    """
    Filtered listing. Supported params:
    start/end (actual rows within the range), op=income|expense,
    plan=planned|actual, account (admin only), project_id, min, max.
    """
    t = transactions.c
    stmt = select(*_columns(tx_columns))
    if not user.is_admin:
        stmt = stmt.where(t.responsible == user.login)

    start = clamp_str(params.get("start")) or None
    end = clamp_str(params.get("end")) or None
    if start:
        stmt = stmt.where(t.date != "", t.date >= start)
    if end:
        stmt = stmt.where(t.date != "", t.date <= end)

    op = OP_FILTERS.get(params.get("op") or "")
    if op:
        stmt = stmt.where(t.operationType == op)

    plan = params.get("plan")
    if plan == "planned":
        stmt = stmt.where(t.date == "")
    elif plan == "actual":
        stmt = stmt.where(t.date != "")

    account = params.get("account")
    if account and user.is_admin:
        stmt = stmt.where(t.responsible == clamp_str(account))

    project_id = to_int_or_none(params.get("project_id"))
    if project_id is not None:
        stmt = stmt.where(t.project_id == project_id)

    if params.get("min") not in (None, ""):
        stmt = stmt.where(t.total >= (to_number_or_none(params["min"]) or 0))
    if params.get("max") not in (None, ""):
        stmt = stmt.where(t.total <= (to_number_or_none(params["max"]) or 0))

    return _rows(session, _ordered(stmt))


def normalize_tx_input(
    body: Mapping[str, Any], *, for_create: bool, has_remainder: bool
) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Turn a request body into a column patch.
    Returns (patch, error); `error` is a client message when invalid.
    """
    op = body.get("operationType")
    op = op if op in OPERATION_TYPES else None

    date = clamp_date_str(body.get("date"))
    if date is None:
        return {}, "Invalid date format (YYYY-MM-DD or empty)"

    total = to_number_or_none(body.get("total"))
    project_id = to_int_or_none(body.get("project_id"))

    patch: Dict[str, Any] = {}
    if op:
        patch["operationType"] = op
    if for_create or "date" in body:
        patch["date"] = date
    if total is not None:
        patch["total"] = total
    if body.get("responsible") is not None:
        patch["responsible"] = clamp_str(body["responsible"])
    if body.get("note") is not None:
        patch["note"] = clamp_str(body["note"])
    elif for_create:
        patch["note"] = ""
    if project_id is not None:
        patch["project_id"] = project_id

    if has_remainder:
        rv = to_number_or_none(body.get("remainder"))
        remainder = rv if rv is not None else total
        if for_create or "remainder" in body or total is not None:
            patch["remainder"] = remainder if remainder is not None else 0

    if for_create:
        if not op:
            return {}, f'operationType must be "{INCOME}" or "{EXPENSE}"'
        if total is None:
            return {}, "total must be a number"
        if not is_non_empty_str(patch.get("responsible", "")):
            return {}, "responsible is required"
        if project_id is None:
            return {}, "project_id is required"

    return patch, None


def get_transaction(
    session: Session, tx_id: int, tx_columns: Set[str]
) -> Optional[Dict[str, Any]]:
    row = session.execute(
        select(*_columns(tx_columns)).where(transactions.c.id == tx_id)
    ).mappings().first()
    return dict(row) if row else None


def create_transaction(
    session: Session, patch: Dict[str, Any], tx_columns: Set[str]
) -> Dict[str, Any]:
    values = {k: v for k, v in patch.items() if k in tx_columns}
    result = session.execute(insert(transactions).values(**values))
    row = get_transaction(session, result.inserted_primary_key[0], tx_columns)
    session.commit()
    return row


def update_transaction(
    session: Session, tx_id: int, patch: Dict[str, Any], tx_columns: Set[str]
) -> Optional[Dict[str, Any]]:
    values = {k: v for k, v in patch.items() if k in tx_columns}
    result = session.execute(
        update(transactions).where(transactions.c.id == tx_id).values(**values)
    )
    if not result.rowcount:
        session.rollback()
        return None
    row = get_transaction(session, tx_id, tx_columns)
    session.commit()
    return row


def delete_transaction(session: Session, tx_id: int) -> bool:
    result = session.execute(delete(transactions).where(transactions.c.id == tx_id))
    session.commit()
    return result.rowcount > 0
