# weam/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from starlette.middleware.gzip import GZipMiddleware

from weam.config import Settings, get_settings
from weam.context import AppContext
from weam.errors import ApiError, register_exception_handlers
from weam.middleware import (
    ApiNoStoreMiddleware,
    BodyLimitMiddleware,
    OriginGuardMiddleware,
    SecurityHeadersMiddleware,
)
from weam.observability import RequestLogMiddleware
from weam.ratelimit import api_rate_limit
from weam.routers.auth import router as auth_router
from weam.routers.dashboard import router as dashboard_router
from weam.routers.projects import router as projects_router
from weam.routers.reference import router as reference_router
from weam.routers.system import router as system_router
from weam.routers.transactions import router as transactions_router
from weam.routers.users import router as users_router

logger = logging.getLogger("weam.main")

API_ROUTERS = (
    system_router,
    auth_router,
    users_router,
    reference_router,
    projects_router,
    transactions_router,
    dashboard_router,
)


def _spa_fallback(public_dir: Path):
    root = public_dir.resolve()

    async def spa(request: Request, path: str):
        if path == "api" or path.startswith("api/"):
            raise ApiError(404, "Not Found")

        if path:
            candidate = (root / path).resolve()
            # stay inside the build directory
            if candidate.is_relative_to(root) and candidate.is_file():
                return FileResponse(candidate)
            if path == "favicon.ico":
                return Response(status_code=204)

        index = root / "index.html"
        if not index.is_file():
            logger.error("SPA bundle not found at %s", index)
            raise ApiError(
                500, "SPA bundle not found (build). Did you run the frontend build?"
            )
        return FileResponse(index)

    return spa


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory. Checks the database schema up front and raises
    SchemaError if it is incomplete.
    """
    settings = settings or get_settings()
    ctx = AppContext.build(settings)
    ctx.db.ensure_schema()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        logger.info("Shutting down, closing database")
        ctx.db.dispose()

    app = FastAPI(
        title="WEAM",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/api/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/api/openapi.json",
    )
    app.state.ctx = ctx

    register_exception_handlers(app)

    # Added innermost first: the request log ends up outermost.
    app.add_middleware(ApiNoStoreMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(BodyLimitMiddleware, max_bytes=settings.body_limit_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.client_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )
    app.add_middleware(OriginGuardMiddleware, origins=settings.client_origins)
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)
    app.add_middleware(RequestLogMiddleware)

    for router in API_ROUTERS:
        app.include_router(router, dependencies=[Depends(api_rate_limit)])

    # Registered last so every API route wins.
    app.add_api_route(
        "/{path:path}",
        _spa_fallback(Path(settings.public_dir)),
        methods=["GET"],
        include_in_schema=False,
    )
    return app
