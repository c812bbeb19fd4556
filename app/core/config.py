from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getint(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Privileged connection used only when a scoped write is denied.
    database_elevated_url: str | None = None
    jwt_public_key: str | None = None
    jwt_issuer: str = "progress-service"
    jwt_audience: str = "progress-service"
    catalog_cache_ttl: int = 300

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", 8000)
    catalog_cache_ttl = _getint("CATALOG_CACHE_TTL", 300)
    if catalog_cache_ttl <= 0:
        raise ValueError(
            f"CATALOG_CACHE_TTL must be positive (got {catalog_cache_ttl})"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        database_elevated_url=_getenv("DATABASE_ELEVATED_URL", "") or None,
        jwt_public_key=_getenv("JWT_PUBLIC_KEY", "") or None,
        jwt_issuer=_getenv("JWT_ISSUER", "progress-service"),
        jwt_audience=_getenv("JWT_AUDIENCE", "progress-service"),
        catalog_cache_ttl=catalog_cache_ttl,
    )


SETTINGS = load_settings()
