"""
Queue configuration using Pydantic Settings.

Values come from keyword arguments, then DEQUEUE_* environment variables,
then a .env file, then the defaults below. Every DocumentQueue owns its own
QueueSettings instance; nothing here is process-wide mutable state.

Set DEQUEUE_TIMEOUT=none to disable lease expiry.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueSettings(BaseSettings):
    """Queue settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_parse_none_str="none",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Engine
    timeout: float | None = Field(default=300.0, gt=0, allow_inf_nan=False)
    default_priority: int = 3
    peek_limit: int = Field(default=10, gt=0)

    # MongoDB
    mongo_url: str = "mongodb://localhost:27017"
    mongo_database: str = "dequeue"
    mongo_collection: str = "dequeue"

    # Observability
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"


@lru_cache
def get_settings() -> QueueSettings:
    """Get cached settings instance."""
    return QueueSettings()
