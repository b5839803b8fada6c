# weam/routers/users.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from weam.db import get_session
from weam.errors import ApiError
from weam.models import User
from weam.policy import USER_PATCH_POLICY
from weam.routers.auth import public_user
from weam.security import AuthUser, admin_only, current_user, hash_password
from weam.validation import is_non_empty_str

router = APIRouter(prefix="/api/users", tags=["users"])

users = User.__table__


@router.get("")
def list_users(
    _admin: AuthUser = Depends(admin_only), session: Session = Depends(get_session)
):
    rows = session.exec(select(User).order_by(User.id)).all()
    # `type` duplicates `role` for older clients
    return [{**public_user(u), "type": u.role} for u in rows]


@router.post("")
def create_user(_admin: AuthUser = Depends(admin_only)):
    # Account creation is closed by policy; users are provisioned in the database.
    raise ApiError(405, "Method Not Allowed by policy", headers={"Allow": "GET"})


@router.put("/{user_id}/password")
def change_password(
    user_id: int,
    body: Optional[Dict[str, Any]] = Body(None),
    _admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
):
    new_password = (body or {}).get("newPassword")
    if not is_non_empty_str(new_password):
        raise ApiError(400, "id and newPassword are required")
    result = session.execute(
        update(users)
        .where(users.c.id == user_id)
        .values(password_hash=hash_password(new_password))
    )
    session.commit()
    return {"updated": result.rowcount > 0}


@router.put("/{user_id}")
def update_user(
    user_id: int,
    body: Optional[Dict[str, Any]] = Body(None),
    user: AuthUser = Depends(current_user),
    session: Session = Depends(get_session),
):
    """Self-service profile edit; admins may edit anyone and change roles."""
    if not user.is_admin and user.user_id != user_id:
        raise ApiError(403, "Forbidden")

    patch = USER_PATCH_POLICY.apply(user.role, body or {})
    if not patch:
        raise ApiError(400, "No permitted fields")

    result = session.execute(update(users).where(users.c.id == user_id).values(**patch))
    if not result.rowcount:
        session.rollback()
        raise ApiError(404, "User not found or nothing changed")
    session.commit()

    row = session.get(User, user_id)
    return {"updated": True, "user": public_user(row)}


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    admin: AuthUser = Depends(admin_only),
    session: Session = Depends(get_session),
):
    if admin.user_id == user_id:
        raise ApiError(400, "You cannot delete your own account")
    try:
        result = session.execute(delete(users).where(users.c.id == user_id))
        session.commit()
    except IntegrityError:
        # older databases lack ON DELETE SET NULL on projects.user_id
        session.rollback()
        raise ApiError(409, "User still owns projects; reassign them first")
    return {"deleted": result.rowcount > 0}
