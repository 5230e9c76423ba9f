"""
Configuration settings for the MemoAI review engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every setting can be overridden with a MEMOAI_-prefixed environment variable,
e.g. MEMOAI_LLM_API_KEY or MEMOAI_PUSH_MAX_ACTIVE.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from memoai.push.models import PushConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MEMOAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # LLM
    # ========================================
    llm_api_key: str = Field(
        default="",
        description="API key for the OpenAI-compatible endpoint",
    )
    llm_api_base: str = Field(
        default="https://api.openai.com/v1",
        description="API base URL",
    )
    llm_model: str = Field(
        default="gpt-3.5-turbo",
        description="Model used for extraction and tutoring",
    )
    llm_timeout: int = Field(
        default=60,
        ge=10,
        le=300,
        description="Request timeout in seconds",
    )

    # ========================================
    # Pushes
    # ========================================
    push_max_active: int = Field(
        default=5,
        ge=1,
        le=20,
        description="How many pushes may be open at the same time",
    )
    push_due_hours: float = Field(
        default=24,
        ge=1,
        le=168,
        description="Hours a push stays open before it expires",
    )
    push_score_threshold: float = Field(
        default=2.0,
        ge=2,
        le=6,
        description="Minimum chunk score for a chunk to be pushed",
    )
    language: Literal["en", "zh"] = Field(
        default="en",
        description="Language the tutor uses",
    )

    # ========================================
    # Storage & Logging
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".memoai",
        description="Directory holding the state database",
    )
    vault_dir: Path = Field(
        default=Path("."),
        description="Root directory of the notes",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def database_path(self) -> Path:
        return self.data_dir / "state.db"

    def push_config(self) -> PushConfig:
        return PushConfig(
            max_active=self.push_max_active,
            due_window_hours=self.push_due_hours,
            score_threshold=self.push_score_threshold,
        )

    def has_ai_configured(self) -> bool:
        """Check if an LLM API key is configured."""
        return bool(self.llm_api_key.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
