# weam/routers/dashboard.py
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from weam.db import Database, get_db, get_session
from weam.security import AuthUser, current_user
from weam.services.dashboard import DashboardFilters, build_dashboard

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard")
def dashboard(
    request: Request,
    user: AuthUser = Depends(current_user),
    session: Session = Depends(get_session),
    db: Database = Depends(get_db),
):
    filters = DashboardFilters.from_query(request.query_params)
    return build_dashboard(session, user, filters, db.tx_columns)
