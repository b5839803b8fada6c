# weam/config.py
from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()  # .env values become plain environment variables

logger = logging.getLogger("weam.config")

DEFAULT_ACCESS_TTL = "15m"
DEFAULT_REFRESH_TTL = "7d"
VALID_SAMESITE = ("Lax", "Strict", "None")

_DURATION_RE = re.compile(r"^(\d+)\s*([smhd])?$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class ConfigError(RuntimeError):
    """Startup configuration is unusable; the process must not start."""


def parse_duration_to_seconds(value, fallback: int) -> int:
    """
    Normalize a TTL to whole seconds.
    Accepts ints and strings like "3600", "3600s", "15m", "1h", "7d".
    Anything else returns `fallback`.
    """
    if value is None or value == "":
        return fallback
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return max(0, int(value))
    s = str(value).strip().lower()
    m = _DURATION_RE.match(s)
    if not m:
        return fallback
    return max(0, int(m.group(1)) * _UNIT_SECONDS[m.group(2) or "s"])


def _env(*names: str, default: str = "") -> str:
    """First non-empty env var among `names`."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "").strip())
    except ValueError:
        return default


def _env_list(*names: str, default: str = "") -> List[str]:
    raw = _env(*names, default=default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    # APP_ENV=production turns on Secure cookies and stricter warnings
    env: str = Field(default_factory=lambda: _env("APP_ENV", default="development"))
    host: str = Field(default_factory=lambda: _env("HOST", default="0.0.0.0"))
    port: int = Field(default_factory=lambda: _env_int("PORT", 4000))

    # --- JWT / cookies ---
    jwt_secret: str = Field(default_factory=lambda: _env("JWT_SECRET", "SECRET_KEY"))
    refresh_secret: str = Field(default_factory=lambda: _env("REFRESH_SECRET"))
    access_token_ttl: str = Field(
        default_factory=lambda: _env(
            "ACCESS_TOKEN_TTL", "ACCESS_TTL", default=DEFAULT_ACCESS_TTL
        )
    )
    refresh_token_ttl: str = Field(
        default_factory=lambda: _env(
            "REFRESH_TOKEN_TTL", "REFRESH_TTL", default=DEFAULT_REFRESH_TTL
        )
    )
    access_cookie_name: str = Field(
        default_factory=lambda: _env("ACCESS_COOKIE_NAME", default="access_token")
    )
    refresh_cookie_name: str = Field(
        default_factory=lambda: _env("REFRESH_COOKIE_NAME", default="refresh_token")
    )
    cookie_secure: bool = Field(default_factory=lambda: _env_bool("COOKIE_SECURE"))
    cookie_samesite: str = Field(
        default_factory=lambda: _env("COOKIE_SAMESITE", default="Lax")
    )
    cookie_domain: Optional[str] = Field(
        default_factory=lambda: _env("COOKIE_DOMAIN") or None
    )

    # --- CORS / CSP / HSTS ---
    client_origins: List[str] = Field(
        default_factory=lambda: _env_list(
            "CLIENT_ORIGINS",
            "CLIENT_ORIGIN",
            default="http://localhost:5173,http://localhost:3000,http://localhost:4000",
        )
    )
    enable_hsts: bool = Field(default_factory=lambda: _env_bool("ENABLE_HSTS"))
    csp_upgrade_insecure: bool = Field(
        default_factory=lambda: _env_bool("CSP_UPGRADE_INSECURE")
    )

    # --- storage / static ---
    database_file: str = Field(
        default_factory=lambda: str(
            Path(_env("DATABASE_FILE", default="data/database.sqlite")).resolve()
        )
    )
    public_dir: str = Field(default_factory=lambda: _env("PUBLIC_DIR", default="build"))

    # --- limits ---
    rate_limit_window_seconds: int = Field(
        default_factory=lambda: _env_int("RATE_LIMIT_WINDOW_SECONDS", 600)
    )
    rate_limit_api_max: int = Field(
        default_factory=lambda: _env_int("RATE_LIMIT_API_MAX", 10000)
    )
    rate_limit_login_max: int = Field(
        default_factory=lambda: _env_int("RATE_LIMIT_LOGIN_MAX", 20)
    )
    body_limit_bytes: int = Field(
        default_factory=lambda: _env_int("BODY_LIMIT_BYTES", 1024 * 1024)
    )
    max_token_length: int = Field(
        default_factory=lambda: _env_int("MAX_TOKEN_LENGTH", 4096)
    )

    # --- process ---
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", default="INFO"))
    shutdown_grace_seconds: int = Field(
        default_factory=lambda: _env_int("SHUTDOWN_GRACE_SECONDS", 2)
    )

    @property
    def is_production(self) -> bool:
        return self.env.strip().lower() == "production"

    @property
    def access_ttl_seconds(self) -> int:
        return parse_duration_to_seconds(self.access_token_ttl, 15 * 60)

    @property
    def refresh_ttl_seconds(self) -> int:
        return parse_duration_to_seconds(self.refresh_token_ttl, 7 * 24 * 60 * 60)

    @property
    def effective_refresh_secret(self) -> str:
        return self.refresh_secret or self.jwt_secret

    @property
    def secure_cookies(self) -> bool:
        return self.cookie_secure or self.is_production


def validate_settings(settings: Settings) -> None:
    """
    Fail-fast checks run once before the app is built.
    Raises ConfigError; warnings only go to the log.
    """
    if settings.cookie_samesite not in VALID_SAMESITE:
        raise ConfigError(
            f"COOKIE_SAMESITE must be one of {'|'.join(VALID_SAMESITE)}, "
            f"got: {settings.cookie_samesite}"
        )

    if len(settings.jwt_secret) < 32:
        raise ConfigError("JWT_SECRET (or SECRET_KEY) is required and must be >= 32 chars.")

    if len(settings.refresh_secret) < 32:
        logger.warning(
            "REFRESH_SECRET is missing or shorter than 32 chars; JWT_SECRET will be "
            "used for refresh tokens. Set a separate long REFRESH_SECRET."
        )

    if settings.is_production and any(
        o.startswith("http://") for o in settings.client_origins
    ):
        logger.warning("Production CLIENT_ORIGINS should use https:// only.")

    db_file = Path(settings.database_file)
    try:
        db_file.parent.mkdir(parents=True, exist_ok=True)
        if not os.access(db_file.parent, os.W_OK):
            raise PermissionError(f"directory {db_file.parent} is not writable")
        existed = db_file.exists()
        with open(db_file, "a"):
            pass
        if not existed:
            logger.warning("Database file %s did not exist; created empty.", db_file)
    except OSError as e:
        raise ConfigError(
            f"Database is not writable. DATABASE_FILE: {db_file}. Reason: {e}. "
            "Hint: chown/chmod the data directory for the service user."
        ) from e


@lru_cache
def get_settings() -> Settings:
    return Settings()
