# weam/middleware.py
"""
HTTP hardening layered around the API:

- SecurityHeadersMiddleware  CSP, HSTS, referrer/permissions policy, nosniff
- OriginGuardMiddleware      403 for an Origin outside CLIENT_ORIGINS
- BodyLimitMiddleware        413 for bodies over BODY_LIMIT_BYTES
- ApiNoStoreMiddleware       Cache-Control: no-store on /api responses
"""

from __future__ import annotations

from typing import Iterable, List

from starlette.middleware.base import BaseHTTPMiddleware

from weam.config import Settings
from weam.errors import error_response

PERMISSIONS_POLICY = "geolocation=(), microphone=(), camera=(), interest-cohort=()"


def build_csp(origins: Iterable[str], upgrade_insecure: bool = False) -> str:
    directives = {
        "default-src": ["'self'"],
        "script-src": ["'self'"],
        "style-src": ["'self'", "'unsafe-inline'", "https://fonts.googleapis.com"],
        "font-src": ["'self'", "data:", "https://fonts.gstatic.com"],
        "img-src": [
            "'self'",
            "data:",
            "blob:",
            "https://images.unsplash.com",
            "https://*.unsplash.com",
        ],
        "connect-src": ["'self'", *origins],
        "object-src": ["'none'"],
        "base-uri": ["'none'"],
        "frame-ancestors": ["'none'"],
        "frame-src": ["'none'"],
        "worker-src": ["'self'", "blob:"],
        "media-src": ["'self'", "blob:"],
        "form-action": ["'self'"],
    }
    parts: List[str] = [f"{name} {' '.join(values)}" for name, values in directives.items()]
    if upgrade_insecure:
        parts.append("upgrade-insecure-requests")
    return "; ".join(parts)


def _is_api(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.csp = build_csp(settings.client_origins, settings.csp_upgrade_insecure)
        self.enable_hsts = settings.enable_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        headers = response.headers
        headers.setdefault("Content-Security-Policy", self.csp)
        headers.setdefault("Referrer-Policy", "no-referrer")
        headers.setdefault("Permissions-Policy", PERMISSIONS_POLICY)
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Cross-Origin-Resource-Policy", "cross-origin")
        if self.enable_hsts:
            headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """Requests without an Origin (curl, same-origin GET) pass through."""

    def __init__(self, app, origins: Iterable[str]):
        super().__init__(app)
        self.origins = frozenset(origins)

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        if origin and origin not in self.origins:
            return error_response(403, "CORS not allowed for this Origin")
        return await call_next(request)


class BodyLimitMiddleware(BaseHTTPMiddleware):
    # Checks the declared Content-Length only.
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request, call_next):
        length = request.headers.get("content-length")
        if length:
            try:
                too_large = int(length) > self.max_bytes
            except ValueError:
                return error_response(400, "Invalid Content-Length")
            if too_large:
                return error_response(413, "Payload Too Large")
        return await call_next(request)


class ApiNoStoreMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        if _is_api(request.url.path):
            response.headers["Cache-Control"] = "no-store"
        response.headers["Vary"] = "Origin, Cookie"
        return response
