"""Tracker configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class TrackerSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///tracker.db"
    echo_sql: bool = False
    app_title: str = "Task Tracker"
    log_level: str = "INFO"

    # Unit-of-work limits. None disables the timeout.
    transaction_timeout_seconds: float | None = 10.0

    # Listing
    default_page_size: int = 20
    max_page_size: int = 100

    # Retention windows (days)
    notification_retention_days: int = 30
    notification_retention_max_days: int = 365
    history_retention_days: int = 365

    # Real-time push: per-subscriber buffer before events are dropped.
    hub_queue_maxsize: int = 100

    duplicate_title_suffix: str = " (Copy)"

    model_config = {"env_prefix": "TRACKER_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = TrackerSettings()
