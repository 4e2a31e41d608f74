from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

# Dev/test fallback only. load_settings() refuses it when APP_ENV=prod.
_DEV_CERTIFICATE_SECRET = "dev-certificate-hash-secret"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getint(name: str, default: str, *, minimum: int = 0) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    certificate_hash_secret: str
    certificate_base_url: str
    certificate_validity_days: int | None
    audit_append_retries: int
    audit_append_backoff_ms: int
    progress_max_minutes_per_report: int

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
    log_json_raw = _getenv("LOG_JSON", "false").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if log_json_raw not in ("true", "false", "1", "0"):
        raise ValueError(f"LOG_JSON must be true|false (got {log_json_raw!r})")

    port = _getint("PORT", "8000", minimum=1)

    database_url = _getenv("DATABASE_URL", "") or None

    secret = _getenv("CERTIFICATE_HASH_SECRET", "") or _DEV_CERTIFICATE_SECRET
    if app_env_raw == "prod" and secret == _DEV_CERTIFICATE_SECRET:
        raise ValueError("CERTIFICATE_HASH_SECRET must be set when APP_ENV=prod")

    validity_days = _getint("CERTIFICATE_VALIDITY_DAYS", "0")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("true", "1"),
        port=port,
        database_url=database_url,
        certificate_hash_secret=secret,
        certificate_base_url=_getenv(
            "CERTIFICATE_BASE_URL", "https://certificates.local"
        ).rstrip("/"),
        # 0 means certificates never expire
        certificate_validity_days=validity_days or None,
        audit_append_retries=_getint("AUDIT_APPEND_RETRIES", "3", minimum=1),
        audit_append_backoff_ms=_getint("AUDIT_APPEND_BACKOFF_MS", "50"),
        progress_max_minutes_per_report=_getint(
            "PROGRESS_MAX_MINUTES_PER_REPORT", "240", minimum=1
        ),
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
