"""Application configuration."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings for the ordering app."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-5-mini"
    title_model: str = "gpt-5-nano"
    extraction_timeout_seconds: int = 60
    database_url: Optional[str] = None
    database_echo: bool = False
    default_session_minutes: int = 30
    max_session_minutes: int = 1440  # one day
    share_code_length: int = 6
    share_code_attempts: int = 5
    refresh_interval_seconds: float = 5.0
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
