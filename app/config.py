"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_LANGUAGE = "en-US"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineDeck", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_access_token: str | None = Field(default=None, alias="TMDB_ACCESS_TOKEN")
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_url: HttpUrl = Field(
        default="https://image.tmdb.org/t/p/", alias="TMDB_IMAGE_URL"
    )
    tmdb_language: str = Field(default=DEFAULT_LANGUAGE, alias="TMDB_LANGUAGE")
    tmdb_cache_enabled: bool = Field(default=True, alias="TMDB_CACHE_ENABLED")
    tmdb_cache_size: int = Field(
        default=1024, alias="TMDB_CACHE_SIZE", ge=1, le=100_000
    )

    search_suggestion_limit: int = Field(
        default=6, alias="SEARCH_SUGGESTION_LIMIT", ge=1, le=20
    )
    browse_session_limit: int = Field(
        default=512, alias="BROWSE_SESSION_LIMIT", ge=1, le=100_000
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cinedeck.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_access_token", "tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _default_language(cls, value: object) -> object:
        if value is None:
            return DEFAULT_LANGUAGE
        if isinstance(value, str):
            return value.strip() or DEFAULT_LANGUAGE
        return value

    @property
    def has_tmdb_credentials(self) -> bool:
        """Return whether either TMDB credential flavour is configured."""

        return bool(self.tmdb_access_token or self.tmdb_api_key)

    @property
    def image_base_url(self) -> str:
        """Image CDN prefix guaranteed to end with a slash."""

        base = str(self.tmdb_image_url)
        return base if base.endswith("/") else f"{base}/"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
