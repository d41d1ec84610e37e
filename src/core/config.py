"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Tracker API")
    app_env: str = Field(default="development")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tracker",
        description="PostgreSQL connection URL with asyncpg driver",
    )

    # JWT Authentication
    jwt_secret_key: str = Field(
        default="CHANGE-ME-IN-PRODUCTION",
        description="Secret key for JWT signing (HS256)",
    )
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_minutes: int = Field(default=30)

    # Domain operations
    operation_timeout_seconds: float = Field(
        default=10.0,
        description="Default deadline for a single domain operation",
    )

    # Event channel
    event_topic: str = Field(default="domain-events")
    event_partitions: int = Field(
        default=8,
        description="Partition queues per subscription (ordering holds per entity id)",
    )
    event_max_redeliveries: int = Field(default=5)
    event_redelivery_backoff_seconds: float = Field(default=0.5)
    event_drain_timeout_seconds: float = Field(default=15.0)

    # Outbox relay
    outbox_relay_interval_seconds: float = Field(default=30.0)
    outbox_relay_grace_seconds: int = Field(
        default=60,
        description="Only relay outbox rows older than this (fresh rows are flushed inline)",
    )
    outbox_relay_batch_size: int = Field(default=100)

    # Delivery channels
    email_api_url: str = Field(
        default="",
        description="Base URL of the outbound mail API (email channel disabled when empty)",
    )
    push_api_url: str = Field(
        default="",
        description="Base URL of the push gateway (push channel disabled when empty)",
    )
    delivery_api_token: str = Field(default="")
    delivery_http_timeout_seconds: float = Field(default=5.0)
    delivery_max_attempts: int = Field(default=3)
    delivery_retry_backoff_seconds: float = Field(default=0.5)

    # Notifications
    notification_retention_days: int = Field(default=90)
    notification_cleanup_interval_seconds: float = Field(default=86400.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver scheme.

        Most providers supply a standard ``postgresql://`` URL.
        SQLAlchemy's async engine requires ``postgresql+asyncpg://``.
        """
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    # Rate Limiting
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable/disable rate limiting (disable for tests)",
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed origins",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
