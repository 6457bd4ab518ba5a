"""
Quillpress API Configuration

Environment-based settings for the multi-tenant blog platform API.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn, RedisDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Quillpress API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # Database: accepts either DATABASE_URL or individual fields
    database_url_external: str = Field(default="", alias="DATABASE_URL")
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "quillpress"
    postgres_password: str = "quillpress"
    postgres_db: str = "quillpress"

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_external:
            url = self.database_url_external
            # Replace postgres:// with postgresql+asyncpg://
            if url.startswith("postgres://"):
                url = "postgresql+asyncpg://" + url[len("postgres://"):]
            elif url.startswith("postgresql://"):
                url = "postgresql+asyncpg://" + url[len("postgresql://"):]
            return url
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db,
            )
        )

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Sync PostgreSQL URL for Alembic migrations."""
        if self.database_url_external:
            url = self.database_url_external
            if url.startswith("postgres://"):
                url = "postgresql://" + url[len("postgres://"):]
            elif url.startswith("postgresql+asyncpg://"):
                url = "postgresql://" + url[len("postgresql+asyncpg://"):]
            return url
        return str(
            PostgresDsn.build(
                scheme="postgresql",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db,
            )
        )

    # Redis: accepts either REDIS_URL or individual fields
    redis_url_external: str = Field(default="", alias="REDIS_URL")
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        if self.redis_url_external:
            return self.redis_url_external
        return str(
            RedisDsn.build(
                scheme="redis",
                host=self.redis_host,
                port=self.redis_port,
                path=str(self.redis_db),
            )
        )

    # API keys
    api_key_environment: str = Field(
        default="live",
        pattern=r"^[a-z]+$",
        description="Deployment tag embedded in generated keys (sk_<env>_...)",
    )
    api_key_default_rate_limit_per_minute: int = Field(default=60, gt=0)
    api_key_default_rate_limit_per_day: int = Field(default=10_000, gt=0)

    # Usage telemetry
    usage_top_endpoints: int = Field(
        default=5,
        gt=0,
        description="Number of ranked endpoints returned by usage statistics",
    )
    usage_retention_days: int = Field(
        default=90,
        gt=0,
        description="Usage events older than this are purged by the nightly task",
    )

    # Site ownership/membership cache (Redis)
    enable_site_cache: bool = False
    site_cache_ttl_seconds: int = 60

    # Error Monitoring
    sentry_dsn: str = Field(
        default="",
        description="Sentry DSN for error monitoring (leave empty to disable)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
