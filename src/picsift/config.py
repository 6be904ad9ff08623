"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    dropbox_app_key: str
    dropbox_app_secret: str
    dropbox_refresh_token: str
    dropbox_api_url: str = "https://api.dropboxapi.com/2"
    dropbox_token_url: str = "https://api.dropbox.com/oauth2/token"
    quarantine_root: str = "/_TRASHME"
    storage_path: Path | None = None
    max_queue_size: int = 5000
    session_expiry_hours: float = 24
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
