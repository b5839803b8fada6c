import time
from collections import defaultdict, deque
from threading import Lock

from fastapi import Request

from weam.errors import ApiError


class InMemoryRateLimiter:
    """Simple in-memory sliding-window limiter, one deque of hits per key."""

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self._events = defaultdict(deque)
        self._lock = Lock()
        self._last_sweep = time.monotonic()

    def _sweep(self, cutoff: float) -> None:
        # forget keys with no hits inside the window
        stale = [k for k, ev in self._events.items() if not ev or ev[-1] <= cutoff]
        for key in stale:
            del self._events[key]

    def tracked_keys(self) -> int:
        return len(self._events)

    def is_allowed(self, key: str) -> bool:
        if self.limit <= 0 or self.window_seconds <= 0:
            return False

        now = time.monotonic()
        cutoff = now - self.window_seconds

        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now

            events = self._events[key]
            while events and events[0] <= cutoff:
                events.popleft()

            if len(events) >= self.limit:
                return False

            events.append(now)
            return True


def get_client_identifier(request: Request) -> str:
    """
    Peer address of the connection. X-Forwarded-For is not read here: the
    client controls it. Behind a proxy, uvicorn's proxy_headers (with
    FORWARDED_ALLOW_IPS) rewrites request.client from the trusted hop.
    """
    return request.client.host if request.client else "unknown"


def _check(request: Request, bucket: str, message: str) -> None:
    limiter = request.app.state.ctx.limiters.get(bucket)
    if limiter is None:
        return
    if not limiter.is_allowed(f"{bucket}:{get_client_identifier(request)}"):
        raise ApiError(
            429, message, headers={"Retry-After": str(limiter.window_seconds)}
        )


def api_rate_limit(request: Request) -> None:
    _check(request, "api", "Too many requests, try later.")


def login_rate_limit(request: Request) -> None:
    _check(request, "login", "Too many login attempts, try later.")
