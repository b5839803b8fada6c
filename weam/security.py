# weam/security.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request, Response
from passlib.context import CryptContext

from weam.config import Settings
from weam.errors import ApiError
from weam.models import ROLE_ADMIN

logger = logging.getLogger("weam.auth")

# Password hashing context (bcrypt by default)
_pwd = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)

JWT_ALGORITHM = "HS256"
SUB_ACCESS = "access"
SUB_REFRESH = "refresh"


# ------------ Password helpers ------------


def hash_password(plain: str) -> str:
    """Return a secure hash for a plaintext password."""
    return _pwd.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """Verify a plaintext password against a stored hash."""
    if not hashed:
        return False
    try:
        return _pwd.verify(plain, hashed)
    except ValueError:
        # not a recognizable hash
        return False


# ------------ Tokens ------------


@dataclass(frozen=True)
class AuthUser:
    user_id: int
    role: str
    login: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def claims(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "role": self.role, "login": self.login}

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AuthUser":
        return cls(
            user_id=int(claims["userId"]),
            role=str(claims.get("role") or ""),
            login=str(claims.get("login") or ""),
        )


def _sign(payload: Dict[str, Any], sub: str, secret: str, ttl_seconds: int) -> str:
    now = int(time.time())
    claims = {**payload, "sub": sub, "iat": now, "exp": now + ttl_seconds}
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def sign_access_token(settings: Settings, payload: Dict[str, Any]) -> str:
    return _sign(payload, SUB_ACCESS, settings.jwt_secret, settings.access_ttl_seconds)


def sign_refresh_token(settings: Settings, payload: Dict[str, Any]) -> str:
    return _sign(
        payload,
        SUB_REFRESH,
        settings.effective_refresh_secret,
        settings.refresh_ttl_seconds,
    )


def _verify(token: str, secret: str, sub: str) -> Dict[str, Any]:
    decoded = jwt.decode(
        token,
        secret,
        algorithms=[JWT_ALGORITHM],
        options={"require": ["exp", "sub"]},
    )
    if decoded.get("sub") != sub:
        raise jwt.InvalidTokenError("invalid sub")
    return decoded


def verify_access(settings: Settings, token: str) -> Dict[str, Any]:
    """Decode an access token; raises jwt.InvalidTokenError (incl. expiry)."""
    return _verify(token, settings.jwt_secret, SUB_ACCESS)


def verify_refresh(settings: Settings, token: str) -> Dict[str, Any]:
    """Decode a refresh token; access tokens are rejected by their sub marker."""
    return _verify(token, settings.effective_refresh_secret, SUB_REFRESH)


# ------------ Cookies ------------


def _cookie_opts(settings: Settings) -> Dict[str, Any]:
    return {
        "httponly": True,
        "samesite": settings.cookie_samesite.lower(),
        "secure": settings.secure_cookies,
        "domain": settings.cookie_domain,
        "path": "/",
    }


def set_access_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        settings.access_cookie_name,
        token,
        max_age=settings.access_ttl_seconds,
        **_cookie_opts(settings),
    )


def set_auth_cookies(
    response: Response, settings: Settings, access: str, refresh: str
) -> None:
    set_access_cookie(response, settings, access)
    response.set_cookie(
        settings.refresh_cookie_name,
        refresh,
        max_age=settings.refresh_ttl_seconds,
        **_cookie_opts(settings),
    )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    for name in (settings.access_cookie_name, settings.refresh_cookie_name):
        response.set_cookie(name, "", max_age=0, **_cookie_opts(settings))


# ------------ Request auth ------------


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.ctx.settings


def token_from_request(request: Request, settings: Settings) -> Optional[str]:
    """Bearer header (scripts/CLI) first, then the HttpOnly access cookie."""
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[7:].strip() or None
    cookie = request.cookies.get(settings.access_cookie_name, "")
    return cookie.strip() or None


def _resolve_user(request: Request, strict: bool) -> Optional[AuthUser]:
    settings = get_settings_from_app(request)
    token = token_from_request(request, settings)
    request.state.user = None

    if not token:
        if strict:
            raise ApiError(401, "Unauthorized")
        return None

    if len(token) > settings.max_token_length:
        if strict:
            raise ApiError(401, "Invalid or expired token")
        return None

    try:
        user = AuthUser.from_claims(verify_access(settings, token))
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
        if strict:
            raise ApiError(401, "Invalid or expired token")
        return None

    request.state.user = user
    return user


def current_user(request: Request) -> AuthUser:
    """Dependency: 401 unless a valid access token is present."""
    return _resolve_user(request, strict=True)


def optional_user(request: Request) -> Optional[AuthUser]:
    """Dependency: the user, or None for a missing/invalid token."""
    return _resolve_user(request, strict=False)


def admin_only(user: AuthUser = Depends(current_user)) -> AuthUser:
    if not user.is_admin:
        raise ApiError(403, "Forbidden")
    return user


__all__ = [
    "AuthUser",
    "hash_password",
    "verify_password",
    "sign_access_token",
    "sign_refresh_token",
    "verify_access",
    "verify_refresh",
    "set_access_cookie",
    "set_auth_cookies",
    "clear_auth_cookies",
    "token_from_request",
    "current_user",
    "optional_user",
    "admin_only",
]
