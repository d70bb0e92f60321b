"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")

    # Server
    PORT: int = Field(default=8080, description="Port to bind to (the host platform injects this)")

    # Database - Supabase
    SUPABASE_DATABASE_URL: str = Field(default="")

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # Polar
    POLAR_ENVIRONMENT: str = Field(default="sandbox")
    POLAR_WEBHOOK_SECRET: str = Field(default="")
    WEBHOOK_IDEMPOTENCY_TTL_SECONDS: int = Field(default=86400 * 7)  # 7 days

    # App Configuration
    ALLOWED_ORIGINS: str = Field(default="http://localhost:5173,http://localhost:8080")

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def database_url_async(self) -> str:
        """Convert database URL to async format for asyncpg."""
        if self.SUPABASE_DATABASE_URL:
            return self.SUPABASE_DATABASE_URL.replace(
                "postgresql://", "postgresql+asyncpg://"
            )
        return ""

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    @field_validator("POLAR_ENVIRONMENT")
    @classmethod
    def validate_polar_environment(cls, v: str) -> str:
        """Polar only exposes a sandbox and a production API."""
        value = v.strip().lower()
        if value not in ("sandbox", "production"):
            raise ValueError("POLAR_ENVIRONMENT must be 'sandbox' or 'production'")
        return value


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Export a default settings instance
settings = get_settings()
