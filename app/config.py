"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["debug", "info", "warning", "error"]


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Streaming Tracker", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=8080, alias="PORT")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./streamtracker.db", alias="DATABASE_URL"
    )
    query_timeout_seconds: float = Field(default=10.0, alias="QUERY_TIMEOUT", gt=0)
    page_size: int = Field(default=20, alias="PAGE_SIZE", ge=1, le=200)

    tvmaze_base_url: HttpUrl = Field(
        default="https://api.tvmaze.com", alias="TVMAZE_BASE_URL"
    )
    tvmaze_timeout_seconds: float = Field(default=20.0, alias="TVMAZE_TIMEOUT", gt=0)
    online_search_timeout_seconds: float = Field(
        default=30.0, alias="ONLINE_SEARCH_TIMEOUT", gt=0
    )

    log_level: LogLevel = Field(default="info", alias="LOG_LEVEL")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        """Accept log levels case-insensitively, including the ``warn`` shorthand."""

        if not isinstance(value, str):
            return value
        cleaned = value.strip().lower()
        if cleaned == "warn":
            return "warning"
        return cleaned or "info"

    @property
    def logging_level(self) -> str:
        """Return the level name understood by :mod:`logging`."""

        return self.log_level.upper()

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
