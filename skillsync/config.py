"""
Runtime configuration helpers for the SkillSync client.

Loads SUPABASE_*, GEMINI_* and the session timing knobs from the process
environment and from the .env file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)

GEMINI_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class Settings(BaseSettings):
    app_name: str = Field(default="SkillSync", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Social graph / identity store
    store_backend: Literal["supabase", "sql"] = Field(default="sql", alias="SKILLSYNC_STORE")
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_anon_key: str | None = Field(default=None, alias="SUPABASE_ANON_KEY")
    supabase_access_token: str | None = Field(default=None, alias="SUPABASE_ACCESS_TOKEN")
    store_timeout: float = Field(default=15.0, alias="STORE_TIMEOUT")
    database_url: str = Field(default="sqlite+pysqlite:///./skillsync.db", alias="DATABASE_URL")
    require_email_confirmation: bool = Field(default=False, alias="REQUIRE_EMAIL_CONFIRMATION")
    # Persisted auth session restored on launch
    session_user_id: str | None = Field(default=None, alias="SKILLSYNC_SESSION_USER_ID")

    # AI text service
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY"),
    )
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(default=GEMINI_DEFAULT_BASE_URL, alias="GEMINI_BASE_URL")
    ai_timeout: float = Field(default=60.0, alias="AI_TIMEOUT")

    # Sync sessions and messaging
    session_duration_seconds: int = Field(default=600, alias="SESSION_DURATION_SECONDS", ge=1)
    message_poll_interval: float = Field(default=3.0, alias="MESSAGE_POLL_INTERVAL", gt=0)

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings", "GEMINI_DEFAULT_BASE_URL"]
