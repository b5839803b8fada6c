# weam/routers/reference.py
# Lookup lists for the SPA's select boxes.
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from sqlmodel import Session, select

from weam.db import get_session
from weam.errors import ApiError
from weam.models import User
from weam.security import AuthUser, current_user
from weam.services.projects import list_organizations
from weam.validation import clamp_str, is_non_empty_str

router = APIRouter(prefix="/api", tags=["reference"])


@router.get("/responsible")
def responsible(
    user: AuthUser = Depends(current_user), session: Session = Depends(get_session)
):
    stmt = select(User).order_by(User.login)
    if not user.is_admin:
        stmt = stmt.where(User.id == user.user_id)
    return [
        {"id": u.id, "login": u.login, "nickname": u.nickname}
        for u in session.exec(stmt).all()
    ]


@router.get("/organizations")
def organizations(
    user: AuthUser = Depends(current_user), session: Session = Depends(get_session)
):
    return list_organizations(session, user)


@router.post("/organizations")
def add_organization(
    body: Optional[Dict[str, Any]] = Body(None),
    _user: AuthUser = Depends(current_user),
):
    # Organizations are not stored on their own; they exist through projects.
    name = (body or {}).get("name")
    if not is_non_empty_str(name):
        raise ApiError(400, "name is required")
    return {"name": clamp_str(name)}
