# weam/routers/projects.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from weam.db import get_session
from weam.errors import ApiError
from weam.policy import PROJECT_PATCH_POLICY
from weam.security import AuthUser, admin_only, current_user
from weam.services import projects as svc
from weam.validation import is_non_empty_str

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("")
def list_projects(
    user: AuthUser = Depends(current_user), session: Session = Depends(get_session)
):
    return svc.list_projects(session, user)


@router.get("/by-name/{name:path}")
def projects_by_name(
    name: str,
    user: AuthUser = Depends(current_user),
    session: Session = Depends(get_session),
):
    return svc.list_by_name(session, user, name)


@router.post("")
def create_project(
    body: Optional[Dict[str, Any]] = Body(None),
    _admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
):
    body = body or {}
    if not is_non_empty_str(body.get("contractor")) or not is_non_empty_str(
        body.get("project")
    ):
        raise ApiError(400, "contractor and project are required")

    row = svc.create_project(session, svc.normalize_new_project(body))
    return JSONResponse(status_code=201, content=row)


@router.put("/{project_id}")
def update_project(
    project_id: int,
    body: Optional[Dict[str, Any]] = Body(None),
    user: AuthUser = Depends(current_user),
    session: Session = Depends(get_session),
):
    """
    Admins may change any field; an owner only status, dates and progress.
    Keys outside the caller's allow-list are ignored.
    """
    patch = PROJECT_PATCH_POLICY.apply(user.role, body or {})
    if not patch:
        raise ApiError(400, "No permitted fields in patch")

    updated = svc.update_project(session, project_id, patch, user)
    if updated is None:
        raise ApiError(404, "Project not found or not allowed")
    row, fields = updated
    return {"updated": True, "updatedFields": fields, "project": row}


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    _admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
):
    return {"deleted": svc.delete_project(session, project_id)}
