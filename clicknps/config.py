"""ClickNPS configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class NPSSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///clicknps.db"
    echo_sql: bool = False
    app_title: str = "ClickNPS"
    log_level: str = "INFO"
    base_url: str = "http://localhost:8024"
    crypto_pepper: str = ""
    default_ttl_days: int = 30
    max_ttl_days: int = 365
    comment_window_seconds: int = 180
    webhook_timeout_seconds: float = 5.0
    webhook_max_attempts: int = 7
    webhook_retry_schedule_seconds: list[int] = [60, 300, 1800, 7200, 21600, 43200, 86400]
    webhook_claim_ttl_seconds: int = 300
    webhook_response_body_limit: int = 1000
    dispatch_worker_enabled: bool = True
    dispatch_poll_interval_seconds: float = 10.0
    dispatch_batch_size: int = 10

    model_config = {"env_prefix": "NPS_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def templates_dir(self) -> Path:
        return self.base_dir / "templates"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = NPSSettings()
