"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Backend-as-a-service credentials
    APPER_PROJECT_ID: str = ""
    APPER_PUBLIC_KEY: str = ""
    APPER_BASE_URL: str = "https://api.apper.io/v1"
    APPER_TIMEOUT: float = 30.0
    APPER_MAX_RETRIES: int = 1  # attempts for idempotent reads; 1 = no retry

    # List views
    PAGE_SIZE: int = 100
    EXPORT_DIR: str = "."

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
