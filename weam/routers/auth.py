# weam/routers/auth.py
# Cookie-based auth: tokens travel only in HttpOnly cookies, never in bodies.
import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import APIRouter, Body, Depends, Request, Response
from sqlmodel import Session, select

from weam.context import AppContext, get_ctx
from weam.db import get_session
from weam.errors import ApiError
from weam.models import User
from weam.ratelimit import login_rate_limit
from weam.security import (
    AuthUser,
    clear_auth_cookies,
    optional_user,
    set_access_cookie,
    set_auth_cookies,
    sign_access_token,
    sign_refresh_token,
    verify_password,
    verify_refresh,
)
from weam.validation import clamp_str, is_non_empty_str

logger = logging.getLogger("weam.auth")

router = APIRouter(prefix="/api", tags=["auth"])


def public_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "login": user.login,
        "role": user.role,
        "nickname": user.nickname,
    }


@router.post("/login", dependencies=[Depends(login_rate_limit)])
def login(
    response: Response,
    body: Optional[Dict[str, Any]] = Body(None),
    ctx: AppContext = Depends(get_ctx),
    session: Session = Depends(get_session),
):
    body = body or {}
    login_name = body.get("login")
    password = body.get("password")
    if not is_non_empty_str(login_name) or not is_non_empty_str(password):
        raise ApiError(400, "login and password are required")

    user = session.exec(select(User).where(User.login == clamp_str(login_name))).first()
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login for %r", clamp_str(login_name, 64))
        raise ApiError(401, "Invalid credentials")

    claims = AuthUser(user_id=user.id, role=user.role, login=user.login).claims()
    set_auth_cookies(
        response,
        ctx.settings,
        sign_access_token(ctx.settings, claims),
        sign_refresh_token(ctx.settings, claims),
    )
    return {"user": public_user(user)}


@router.post("/refresh")
def refresh(request: Request, response: Response, ctx: AppContext = Depends(get_ctx)):
    token = request.cookies.get(ctx.settings.refresh_cookie_name, "").strip()
    if not token:
        raise ApiError(401, "No refresh token")
    try:
        user = AuthUser.from_claims(verify_refresh(ctx.settings, token))
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
        raise ApiError(401, "Invalid or expired refresh token")

    set_access_cookie(response, ctx.settings, sign_access_token(ctx.settings, user.claims()))
    return {"ok": True}


@router.post("/logout")
def logout(response: Response, ctx: AppContext = Depends(get_ctx)):
    clear_auth_cookies(response, ctx.settings)
    return {"ok": True}


@router.get("/me")
def me(
    user: Optional[AuthUser] = Depends(optional_user),
    session: Session = Depends(get_session),
):
    # Soft endpoint: anonymous callers get {user: null}, not a 401.
    if user is None:
        return {"user": None}
    row = session.get(User, user.user_id)
    return {"user": public_user(row) if row else None}
