"""
Configuration and settings for the challenge backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3 object storage for submission files
    s3_bucket: Optional[str] = Field(default=None, env="S3_BUCKET")
    s3_region: Optional[str] = Field(default=None, env="S3_REGION")
    s3_endpoint: Optional[str] = Field(default=None, env="S3_ENDPOINT")
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Sessions and password-reset tokens (Redis)
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    session_cookie_name: str = Field(default="qid", env="SESSION_COOKIE_NAME")
    session_max_age_seconds: int = Field(
        default=60 * 60 * 24 * 60, env="SESSION_MAX_AGE_SECONDS"
    )
    session_cookie_secure: bool = Field(
        default=False, env="SESSION_COOKIE_SECURE"
    )

    # Outgoing email
    smtp_host: Optional[str] = Field(default=None, env="SMTP_HOST")
    smtp_port: int = Field(default=465, env="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, env="SMTP_USER")
    smtp_password: Optional[str] = Field(default=None, env="SMTP_PASSWORD")
    smtp_use_ssl: bool = Field(default=True, env="SMTP_USE_SSL")
    mail_from: str = Field(
        default="Coding Challenge <no-reply@example.com>", env="MAIL_FROM"
    )

    # Links embedded in emails point at the web frontend.
    frontend_url: str = Field(
        default="http://localhost:3000", env="FRONTEND_URL"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
