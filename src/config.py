"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Meeting Prep Pipeline"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Summary cache store (Turso / local SQLite)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)
    summary_cache_ttl_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Lifetime of entries in the in-memory summary layer",
    )
    summary_cache_max_entries: int = Field(
        default=512,
        ge=1,
        description="Maximum entries held by the in-memory summary layer",
    )

    # Anthropic (generative backend)
    anthropic_api_key: str | None = Field(default=None)
    anthropic_model: str = Field(default="claude-sonnet-4-5")
    llm_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Per-request timeout applied by the SDK client",
    )

    # Retry behaviour for every backend call
    llm_max_attempts: int = Field(default=3, ge=1, le=10)
    llm_base_delay_seconds: float = Field(default=1.0, ge=0.0)
    llm_max_delay_seconds: float = Field(default=10.0, ge=0.0)
    llm_retry_deadline_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Optional wall-clock cap across all attempts of one call",
    )

    # Pricing used for cost estimates (USD per million tokens)
    input_cost_per_1m: float = Field(default=2.20, ge=0.0)
    output_cost_per_1m: float = Field(default=8.80, ge=0.0)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
