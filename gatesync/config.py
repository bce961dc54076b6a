"""Application configuration."""

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./data/gatesync.db"

    # Remote API
    remote_api_url: str = "http://localhost:3000"
    remote_api_key: Optional[str] = None
    remote_timeout_seconds: float = 30.0

    # Sync
    sync_interval_seconds: int = 30
    access_sync_interval_seconds: int = 60
    sync_daily_hour: Optional[int] = None
    sync_daily_minute: int = 0
    sync_max_concurrency: int = 5
    access_sync_on_success: Literal["mark_synced", "delete"] = "mark_synced"

    # Connectivity
    connectivity_probe_enabled: bool = True
    connectivity_probe_interval_seconds: int = 15
    connectivity_probe_path: str = "/health"

    # Application
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 8000


settings = Settings()
