"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``CIVICTRACK_`` prefix; logging and infrastructure
settings use their canonical environment variable names via
``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the CivicTrack service.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``CIVICTRACK_``; infra keys use
    their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="CIVICTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Storage ────────────────────────────────────────────────────────
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # ── Admin API Key (cron / SLA sweep trigger) ───────────────────────
    admin_api_key: str = Field(default="", validation_alias="ADMIN_API_KEY")

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── SLA policy ─────────────────────────────────────────────────────
    sla_default_hours: int = Field(default=72, ge=1, le=720)
    # JSON object, e.g. CIVICTRACK_SLA_HOURS_OVERRIDES='{"Water Supply": 12}'
    sla_hours_overrides: dict[str, int] = Field(default_factory=dict)

    # ── SLA monitor ────────────────────────────────────────────────────
    enable_sla_monitor: bool = True
    sla_check_interval_minutes: int = Field(default=15, ge=1)
    sla_warning_window_minutes: int = Field(default=60, ge=1)
    sla_warning_dedup_hours: int = Field(default=2, ge=1)
    sla_timezone: str = "Asia/Kolkata"

    # ── CORS ───────────────────────────────────────────────────────────
    # Comma-separated origins allowed in production.
    cors_origins: str = ""

    # ── Demo data ──────────────────────────────────────────────────────
    seed_demo_users: bool = True

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
