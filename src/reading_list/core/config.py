"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="READING_LIST_",
        extra="ignore",
    )

    # Persistence service
    api_url: str = "http://localhost:8000"
    api_token: str = ""
    api_timeout: float = 30.0

    # Client-generated ids are namespaced so they never collide with server ids
    temp_id_prefix: str = "temp-"

    # Metadata fetcher
    fetch_page_metadata: bool = True
    metadata_timeout: float = 10.0
    favicon_service_url: str = "https://www.google.com/s2/favicons?domain={domain}&sz=64"

    # Field length limits
    max_title_length: int = Field(default=500, gt=0)
    max_notes_length: int = Field(default=5000, gt=0)
    max_tag_length: int = Field(default=100, gt=0)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept level names in any case."""
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_temp_id_prefix(self) -> "Settings":
        """Temporary ids must carry a non-empty namespace prefix."""
        if not self.temp_id_prefix.strip():
            raise ValueError("temp_id_prefix must not be empty")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
