# weam/routers/transactions.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from weam.db import Database, get_db, get_session
from weam.errors import ApiError
from weam.security import AuthUser, admin_only, current_user
from weam.services import transactions as svc

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("")
def list_transactions(
    user: AuthUser = Depends(current_user),
    session: Session = Depends(get_session),
    db: Database = Depends(get_db),
):
    return svc.list_transactions(session, user, db.tx_columns)


@router.get("/query")
def query_transactions(
    request: Request,
    user: AuthUser = Depends(current_user),
    session: Session = Depends(get_session),
    db: Database = Depends(get_db),
):
    rows = svc.query_transactions(
        session, user, db.tx_columns, dict(request.query_params)
    )
    return {"rows": rows}


@router.post("")
def create_transaction(
    body: Optional[Dict[str, Any]] = Body(None),
    _admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
    db: Database = Depends(get_db),
):
    patch, error = svc.normalize_tx_input(
        body or {}, for_create=True, has_remainder=db.has_tx_remainder
    )
    if error:
        raise ApiError(400, error)
    row = svc.create_transaction(session, patch, db.tx_columns)
    return JSONResponse(status_code=201, content=row)


@router.put("/{tx_id}")
def update_transaction(
    tx_id: int,
    body: Optional[Dict[str, Any]] = Body(None),
    _admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
    db: Database = Depends(get_db),
):
    patch, error = svc.normalize_tx_input(
        body or {}, for_create=False, has_remainder=db.has_tx_remainder
    )
    if error:
        raise ApiError(400, error)
    patch = {k: v for k, v in patch.items() if k in db.tx_columns}
    if not patch:
        raise ApiError(400, "No fields to update")

    row = svc.update_transaction(session, tx_id, patch, db.tx_columns)
    if row is None:
        raise ApiError(404, "Nothing updated")
    return row


@router.delete("/{tx_id}")
def delete_transaction(
    tx_id: int,
    _admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
):
    return {"deleted": svc.delete_transaction(session, tx_id)}
