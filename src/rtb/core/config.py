"""Service configuration loaded from environment variables.

Environment Variables:
    DATABASE_URL: PostgreSQL connection string (optional; memory store if unset)
    STORE_BACKEND: "postgres" or "memory" (default: postgres when DATABASE_URL set)
    DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE: asyncpg pool bounds (default 2 / 10)
    API_KEY: Expected X-API-Key header value
    DISABLE_AUTH: "true" disables the API key check (development only)
    CORS_ORIGINS: Comma-separated list of allowed origins
    UPLOAD_DIR: Directory for application letters (default "uploads")
    MAX_UPLOAD_SIZE_MB: Maximum letter / spreadsheet size (default 10)
    STAFF_NOTIFY_USER_IDS: Comma-separated staff user UUIDs to notify
    LOG_LEVEL: Logging level name (default INFO)
    PORT: HTTP port for uvicorn (default 8000)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("postgres", "memory")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}",
            details={"variable": name},
        )


def _list_env(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime settings for the API server and CLI."""

    database_url: Optional[str] = None
    store_backend: str = "memory"
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    api_key: Optional[str] = None
    disable_auth: bool = False
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    upload_dir: str = "uploads"
    max_upload_size_mb: int = 10
    staff_notify_user_ids: list[UUID] = field(default_factory=list)
    log_level: str = "INFO"
    port: int = 8000

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment.

        Raises:
            ConfigurationError: If a variable has an invalid value
        """
        database_url = os.getenv("DATABASE_URL") or None
        store_backend = os.getenv("STORE_BACKEND", "").strip().lower()
        if not store_backend:
            store_backend = "postgres" if database_url else "memory"
        if store_backend not in STORE_BACKENDS:
            raise ConfigurationError(
                f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}",
                details={"variable": "STORE_BACKEND", "value": store_backend},
            )
        if store_backend == "postgres" and not database_url:
            raise ConfigurationError(
                "DATABASE_URL environment variable is required for the postgres store",
                missing_keys=["DATABASE_URL"],
            )

        staff_ids = []
        for raw in _list_env("STAFF_NOTIFY_USER_IDS"):
            try:
                staff_ids.append(UUID(raw))
            except ValueError:
                raise ConfigurationError(
                    f"STAFF_NOTIFY_USER_IDS contains an invalid UUID: {raw!r}",
                    details={"variable": "STAFF_NOTIFY_USER_IDS"},
                )

        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigurationError(
                f"LOG_LEVEL {log_level!r} is not a valid logging level",
                details={"variable": "LOG_LEVEL"},
            )

        settings = cls(
            database_url=database_url,
            store_backend=store_backend,
            db_pool_min_size=_int_env("DB_POOL_MIN_SIZE", 2),
            db_pool_max_size=_int_env("DB_POOL_MAX_SIZE", 10),
            api_key=os.getenv("API_KEY") or None,
            disable_auth=os.getenv("DISABLE_AUTH", "").lower() == "true",
            cors_origins=_list_env(
                "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
            ),
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            max_upload_size_mb=_int_env("MAX_UPLOAD_SIZE_MB", 10),
            staff_notify_user_ids=staff_ids,
            log_level=log_level,
            port=_int_env("PORT", 8000),
        )
        if settings.db_pool_min_size > settings.db_pool_max_size:
            raise ConfigurationError(
                "DB_POOL_MIN_SIZE cannot exceed DB_POOL_MAX_SIZE",
                details={
                    "min_size": settings.db_pool_min_size,
                    "max_size": settings.db_pool_max_size,
                },
            )
        return settings
