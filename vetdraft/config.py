"""
Configuration and settings for the autosave service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the autosave service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Persistent store (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3-compatible blob storage for autosaved media
    autosave_bucket: str = Field(
        default="form-autosave-files", env="AUTOSAVE_BUCKET"
    )
    s3_endpoint: Optional[str] = Field(default=None, env="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, env="S3_REGION")
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Autosave behaviour
    autosave_debounce_ms: int = Field(default=1000, env="AUTOSAVE_DEBOUNCE_MS")
    autosave_upload_timeout_seconds: float = Field(
        default=30.0, env="AUTOSAVE_UPLOAD_TIMEOUT_SECONDS"
    )
    autosave_signed_url_ttl: int = Field(
        default=3600, env="AUTOSAVE_SIGNED_URL_TTL"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
