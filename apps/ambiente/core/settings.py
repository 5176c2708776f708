from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "ambiente.db"


class Settings(BaseSettings):
    """Unified application settings for Ambiente.

    Loads from env with support for repo ".env" files. Avoids manual load_dotenv().
    """

    _app_env = (os.getenv("APP_ENV") or "").strip().lower()
    _env_files = (
        []
        if _app_env in {"test", "ci"}
        else [
            str((Path(__file__).resolve().parents[1] / ".env")),  # apps/ambiente/.env
            str((Path(__file__).resolve().parents[3] / ".env")),  # repo root .env
        ]
    )

    model_config = SettingsConfigDict(
        env_file=_env_files,
        case_sensitive=False,
        extra="ignore",
    )

    # --- App / Core ---
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_name: str = Field(default="ambiente", alias="APP_NAME")
    debug: bool = Field(default=False, alias="DEBUG")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT", ge=1, le=65535)

    # Logging
    log_level: str | None = Field(default=None, alias="AMBIENTE_LOG_LEVEL")
    log_level_fallback: str | None = Field(default=None, alias="LOG_LEVEL")

    cors_allow_origins: list[str] = Field(default=["*"], alias="CORS_ALLOW_ORIGINS")
    gzip_minimum_size: int = Field(default=1024, alias="GZIP_MINIMUM_SIZE", ge=0)

    # Database
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DB_PATH}",
        alias="DATABASE_URL",
    )
    initial_recommendations_limit: int = Field(
        default=10,
        alias="INITIAL_RECOMMENDATIONS_LIMIT",
        ge=0,
        le=500,
    )
    history_page_size: int = Field(default=100, alias="HISTORY_PAGE_SIZE", ge=1, le=1000)

    # --- Live sessions ---
    # Gate for "do we process this slider event at all".
    slider_throttle_ms: int = Field(default=300, alias="SLIDER_THROTTLE_MS", ge=0)
    # Coarser gates for "do we also tell everyone else right now".
    slider_broadcast_throttle_ms: int = Field(
        default=1000, alias="SLIDER_BROADCAST_THROTTLE_MS", ge=0
    )
    slider_state_throttle_ms: int = Field(default=2000, alias="SLIDER_STATE_THROTTLE_MS", ge=0)

    activity_capacity: int = Field(default=50, alias="ACTIVITY_CAPACITY", ge=1)
    presence_history_size: int = Field(default=24, alias="PRESENCE_HISTORY_SIZE", ge=1)

    reconcile_interval_seconds: float = Field(
        default=60.0, alias="RECONCILE_INTERVAL_SECONDS", gt=0
    )
    stale_after_seconds: float = Field(default=120.0, alias="STALE_AFTER_SECONDS", gt=0)
    presence_refresh_seconds: float = Field(
        default=15.0, alias="PRESENCE_REFRESH_SECONDS", gt=0
    )

    outbound_queue_size: int = Field(default=256, alias="OUTBOUND_QUEUE_SIZE", ge=1)
    shutdown_drain_seconds: float = Field(default=2.0, alias="SHUTDOWN_DRAIN_SECONDS", ge=0)

    # --- HTTP API ---
    api_rate_limit_max: int = Field(default=100, alias="API_RATE_LIMIT_MAX", ge=1)
    api_rate_limit_window_seconds: float = Field(
        default=15 * 60.0, alias="API_RATE_LIMIT_WINDOW_SECONDS", gt=0
    )

    @property
    def resolved_log_level(self) -> str | None:
        return self.log_level or self.log_level_fallback


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

__all__ = ["Settings", "get_settings", "settings"]
