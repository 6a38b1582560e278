from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="FF_", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "FocusFlow"
    environment: str = "development"
    host: str = os.getenv("FF_HOST", "127.0.0.1")
    port: int = int(os.getenv("FF_PORT", "8080"))
    cors_origins: str = os.getenv("FF_CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")

    sqlite_path: Path = Path(os.getenv("FF_SQLITE_PATH", "./data/focusflow.db"))
    timezone: str = os.getenv("FF_TIMEZONE", "UTC")

    token_secret: str = os.getenv("FF_TOKEN_SECRET", "change-me")
    log_level: str = os.getenv("FF_LOG_LEVEL", "INFO")

    tick_interval_seconds: float = 1.0
    auto_start_delay_seconds: float = 2.0

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @computed_field
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()

# Ensure the database directory exists
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
