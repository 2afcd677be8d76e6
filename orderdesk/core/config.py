"""
Order desk settings.

Every value can be set through an ``ORDERDESK_``-prefixed environment variable
or a ``.env`` file in the working directory, e.g.::

    ORDERDESK_API_BASE_URL=https://shop.example.com/api
    ORDERDESK_REQUEST_TIMEOUT_SECONDS=10
    ORDERDESK_ENVIRONMENT=production
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["development", "staging", "production"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Connection, logging and deployment settings for the order desk."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Order backend
    api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Root of the order REST API; admin routes hang off it",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Per-request timeout handed to the HTTP client",
    )

    # Deployment
    environment: Environment = Field(
        default="development",
        description="Selects console logs in development, JSON logs elsewhere",
    )
    log_level: LogLevel = Field(default="INFO")

    app_name: str = Field(default="Order Desk")
    app_version: str = Field(default="1.0.0")

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """
        Require an http(s) URL and drop any trailing slash.

        Raises:
            ValueError: If the scheme is not http or https
        """
        url = v.strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError(
                f"Order API base URL must use http or https, got {v!r}"
            )
        return url.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_staging(self) -> bool:
        return self.environment == "staging"


@lru_cache
def get_settings() -> Settings:
    """Settings read once per process; call ``cache_clear()`` to re-read."""
    return Settings()
