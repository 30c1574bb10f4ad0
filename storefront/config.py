"""Application configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Storefront"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Public base URL used for Payfast return/cancel/notify callbacks
    app_url: str = "http://localhost:3000"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "storefront"
    postgres_password: str = Field(default="storefront_secret")
    postgres_db: str = "storefront"
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync PostgreSQL connection URL for Alembic."""
        return self.database_url.replace("+asyncpg", "").replace("+aiosqlite", "")

    # Payfast (defaults are the public sandbox merchant)
    payfast_merchant_id: str = "10000100"
    payfast_merchant_key: str = "46f0cd694581a"
    payfast_passphrase: Optional[str] = None
    payfast_environment: Literal["sandbox", "production"] = "sandbox"
    payfast_remote_validation: bool = False
    payfast_dns_timeout_seconds: float = 3.0
    payfast_itn_timeout_seconds: float = 20.0

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = None
    email_from_address: str = "orders@storefront.example"
    email_from_name: str = "Storefront"
    email_timeout_seconds: float = 10.0

    # Reverse proxies (CIDRs) whose X-Forwarded-For / X-Real-IP headers are believed
    trusted_proxies: List[str] = []

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
