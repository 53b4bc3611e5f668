"""
Runtime configuration helpers for the story playback service.

Loads DATABASE_URL and the playback tuning knobs from the .env file
located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite+pysqlite:///./storyplay.db", alias="DATABASE_URL")

    app_name: str = Field(default="Story Playback", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")

    # Playback
    tick_interval_ms: int = Field(default=100, gt=0, alias="PLAYBACK_TICK_MS")
    image_duration_ms: int = Field(default=5000, gt=0, alias="PLAYBACK_IMAGE_DURATION_MS")
    session_retention_seconds: float = Field(default=300.0, ge=0, alias="PLAYBACK_SESSION_RETENTION_SECONDS")
    session_idle_seconds: float = Field(default=1800.0, gt=0, alias="PLAYBACK_SESSION_IDLE_SECONDS")
    prune_interval_seconds: float = Field(default=60.0, gt=0, alias="PLAYBACK_PRUNE_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
