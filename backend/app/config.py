"""
Application configuration.

Settings are read from environment variables (or a local ``.env`` file).
Variable names are the upper-cased field names, e.g. ``DATABASE_URL``.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core
    DATABASE_URL: str = Field(default="sqlite:///./timeline.db")
    SECRET_KEY: str = Field(default="change-me")
    LOG_LEVEL: str = Field(default="INFO")

    # Text generation
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_BASE_URL: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_TIMEOUT_S: float = Field(default=120.0, gt=0)
    GENERATION_TEMPERATURE: float = Field(default=0.7, ge=0.0, le=2.0)
    GENERATION_MAX_TOKENS: int = Field(default=16384, ge=256)

    # Generation retry / continuation
    GENERATION_MAX_ATTEMPTS: int = Field(default=2, ge=1, le=10)
    GENERATION_RETRY_BASE_S: float = Field(default=1.0, ge=0.0)
    MAX_CONTINUATIONS: int = Field(default=2, ge=0, le=10)
    CONTINUATION_TAIL_CHARS: int = Field(default=300, ge=50)

    # Persistence
    PERSIST_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)

    # Reconciliation
    FUZZY_MATCH_THRESHOLD: float = Field(default=0.8, ge=0.0, le=1.0)
    FUZZY_MIN_TITLE_LENGTH: int = Field(default=10, ge=1)
    ESSAY_COMPLETION_RATIO: float = Field(default=0.98, gt=0.0, le=1.0)

    PROMPT_VERSION: str = Field(default="2024.1")


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and the API process."""
    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
