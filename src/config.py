"""Application configuration loaded from environment variables."""

from datetime import tzinfo
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "healthsync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | production

    # --- Backend ---
    api_url: str = "https://my-pocket-coach-backend-production.up.railway.app"
    http_timeout_seconds: float = 30.0

    # --- Credentials ---
    auth_token: str | None = None  # takes precedence over auth_token_file
    auth_token_file: Path | None = None

    # --- Health store ---
    health_store: str = "apple_xml"  # apple_xml | json | unsupported
    export_path: Path | None = None
    timezone: str = "UTC"  # device-local zone used for calendar days

    # --- Sync ---
    window_days: int | None = None  # None → sync_config.yaml default

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()
