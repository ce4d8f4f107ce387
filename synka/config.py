"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The database URL, its service credential and the webhook secret have no
    defaults: a process started without them fails at startup rather than on
    the first webhook delivery.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Synka Billing"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database (PostgreSQL)
    database_url: str
    database_service_key: str
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Razorpay
    razorpay_webhook_secret: str
    razorpay_key_secret: str = ""  # checkout callback signatures

    # CORS (server-to-server endpoint, authenticated by signature)
    cors_origins: list[str] = ["*"]

    @field_validator("razorpay_webhook_secret", "database_service_key")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.database_url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once.

    Raises pydantic's ``ValidationError`` when a required variable is missing.
    """
    return Settings()  # type: ignore[call-arg]
