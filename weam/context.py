from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from fastapi import Request

from weam.config import Settings
from weam.db import Database
from weam.ratelimit import InMemoryRateLimiter


@dataclass
class AppContext:
    """Everything a request handler may need, built once by create_app()."""

    settings: Settings
    db: Database
    limiters: Dict[str, InMemoryRateLimiter] = field(default_factory=dict)

    @classmethod
    def build(cls, settings: Settings) -> "AppContext":
        window = settings.rate_limit_window_seconds
        return cls(
            settings=settings,
            db=Database(settings.database_file),
            limiters={
                "api": InMemoryRateLimiter(settings.rate_limit_api_max, window),
                "login": InMemoryRateLimiter(settings.rate_limit_login_max, window),
            },
        )


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx
