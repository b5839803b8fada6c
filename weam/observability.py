# weam/observability.py
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("weam.req")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000

        # set by the auth dependency; absent for static files and early errors
        user = getattr(request.state, "user", None)
        logger.info(
            "%s %s -> %s in %.1fms user=%s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            user.login if user else None,
        )
        return response
