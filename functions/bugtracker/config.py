"""
Configuration and settings for the bug tracker service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="")
    log_level: str = Field(default="INFO", validation_alias="BUGTRACKER_LOG_LEVEL")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="BUGTRACKER_USE_IN_MEMORY_BACKENDS"
    )

    # Browser clients allowed to call the API (credentials are allowed)
    cors_allowed_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "https://bug-tracker-psi-ten.vercel.app",
        ],
        validation_alias="BUGTRACKER_CORS_ALLOWED_ORIGINS",
    )

    # Firebase Cloud Messaging; service account JSON as a string
    firebase_service_account: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_SERVICE_ACCOUNT"
    )

    # First-run provisioning of the default developer account
    seed_enabled: bool = Field(default=True, validation_alias="BUGTRACKER_SEED_ENABLED")
    seed_username: str = Field(default="admin", validation_alias="BUGTRACKER_SEED_USERNAME")
    seed_name: str = Field(
        default="Default Developer", validation_alias="BUGTRACKER_SEED_NAME"
    )
    seed_password: str = Field(default="1234", validation_alias="BUGTRACKER_SEED_PASSWORD")

    # Password reset endpoint
    allow_password_reset: bool = Field(
        default=True, validation_alias="BUGTRACKER_ALLOW_PASSWORD_RESET"
    )
    default_reset_password: str = Field(
        default="1234", validation_alias="BUGTRACKER_DEFAULT_RESET_PASSWORD"
    )

    # Return raw exception messages in 500 responses (debugging only)
    expose_internal_errors: bool = Field(
        default=False, validation_alias="BUGTRACKER_EXPOSE_INTERNAL_ERRORS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
