# weam/errors.py
# Every error leaves the API as {"error": "..."}.
from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("weam.errors")

_NOT_NULL_RE = re.compile(r"NOT NULL constraint failed: \w+\.(\w+)", re.IGNORECASE)


class ApiError(Exception):
    """A handled failure with a client-facing message."""

    def __init__(
        self, status_code: int, message: str, headers: Optional[dict] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.headers = headers


def error_response(
    status_code: int, message: str, headers: Optional[dict] = None
) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


def classify_db_error(
    exc: BaseException, fallback: str = "DB error"
) -> Tuple[int, str]:
    """Map a SQL error message to (status, client message)."""
    msg = str(getattr(exc, "orig", None) or exc or fallback)

    if re.search(r"FOREIGN KEY constraint failed", msg, re.IGNORECASE):
        return 400, "Invalid foreign key (project_id)"
    m = _NOT_NULL_RE.search(msg)
    if m:
        return 400, f'Field "{m.group(1)}" is required'
    if re.search(r"UNIQUE constraint failed", msg, re.IGNORECASE):
        return 409, "Value already exists"
    if re.search(r"no such column", msg, re.IGNORECASE):
        logger.error("SQL error: %s", msg)
        return 500, "Server schema mismatch: no such column"
    if re.search(r"datatype mismatch", msg, re.IGNORECASE):
        return 400, "Invalid data type"
    logger.error("SQL error: %s", msg)
    return 500, fallback


async def _api_error_handler(_request: Request, exc: ApiError):
    return error_response(exc.status_code, exc.message, exc.headers)


async def _http_exception_handler(_request: Request, exc: StarletteHTTPException):
    return error_response(
        exc.status_code, str(exc.detail), getattr(exc, "headers", None)
    )


async def _validation_error_handler(_request: Request, exc: RequestValidationError):
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            return error_response(400, "Malformed JSON")
        if err.get("loc", ("",))[0] == "path":
            return error_response(400, "Invalid id")
    return error_response(400, "Invalid request body")


async def _db_error_handler(_request: Request, exc: SQLAlchemyError):
    status, message = classify_db_error(exc)
    return error_response(status, message)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal Server Error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, _db_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
