"""
Configuration and settings for the site backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service.

    Field names double as (case-insensitive) environment variable names,
    e.g. ``database_url`` is read from ``DATABASE_URL``.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Record store (any SQLAlchemy URL; in-memory when unset)
    database_url: Optional[str] = Field(default=None)

    # Blob store
    upload_root: str = Field(default="uploads")
    storage_backend: Literal["local", "s3"] = Field(default="local")
    s3_bucket: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "use_in_memory_backends", "FOLIO_USE_IN_MEMORY_BACKENDS"
        ),
    )

    # Sessions and the admin console
    session_secret: str = Field(default="change-me-in-production")
    session_max_age_seconds: int = Field(default=24 * 60 * 60)
    session_https_only: bool = Field(default=False)
    admin_email: Optional[str] = Field(default=None)
    admin_password: Optional[str] = Field(default=None)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
