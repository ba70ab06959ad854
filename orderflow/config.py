"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("ORDERFLOW_ENV", "dev").lower()


class Settings(BaseSettings):
    """Environment configuration for the order lifecycle engine."""

    app_env: str = ENV
    database_url: str = "sqlite:///orderflow.db"
    ALLOW_DB_CREATE_ALL: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:3000"]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False

    # --- Delivery confirmation -------------------------------------------
    PIN_CONFIRMATION_THRESHOLD: Decimal = Decimal("120.00")
    PIN_MAX_ATTEMPTS: int = 3
    PIN_LENGTH: int = 4

    # --- Disputes --------------------------------------------------------
    SITE_VISIT_THRESHOLD: Decimal = Decimal("350.00")
    DISPUTE_MIN_DESCRIPTION_LENGTH: int = 10

    # --- Notification outbox ---------------------------------------------
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_MAX_ATTEMPTS: int = 5
    NOTIFICATION_BACKOFF_SECONDS: int = 30
    NOTIFICATION_BATCH_SIZE: int = 50

    # --- Scheduler -------------------------------------------------------
    SCHEDULER_ENABLED: bool = False
    NOTIFICATION_DISPATCH_INTERVAL_SECONDS: int = 15

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("SENTRY_DSN")
    @classmethod
    def _strip_empty_dsn(cls, value: str | None) -> str | None:
        """Normalise empty DSNs to ``None``."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class AppInfo(BaseModel):
    name: str = "orderflow"
    version: str = "0.1.0"


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


__all__ = [
    "ENV",
    "Settings",
    "AppInfo",
    "get_settings",
]
