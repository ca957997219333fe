"""
Terminal configuration from environment.
Backend URL and timeouts are read from env; no secrets are held here.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment (and .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote POS backend
    backend_api_url: str = "http://localhost:3001/api"

    # Timeouts (seconds)
    catalog_request_timeout: float = 5.0
    order_request_timeout: float = 10.0

    # Reconciliation: periodic full refetch of open orders (seconds, 0 disables)
    order_refresh_interval: float = 30.0

    # Identifies this terminal in logs
    terminal_id: str = "terminal-1"

    # Observability
    sentry_dsn: Optional[str] = None
    app_env: str = "development"
    log_level: str = "INFO"

    # API
    api_prefix: str = "/api/v1"


@lru_cache
def get_settings() -> Settings:
    return Settings()
