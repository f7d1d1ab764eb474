"""Configuration management for the Daily Puzzle Engine."""

from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QualityThresholds(BaseModel):
    """Minimum overall scores for each quality verdict."""

    excellent: float = Field(90.0, ge=0, le=100)
    good: float = Field(80.0, ge=0, le=100)
    acceptable: float = Field(70.0, ge=0, le=100)
    needs_work: float = Field(50.0, ge=0, le=100)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # API Keys
    openai_api_key: Optional[str] = Field(None)
    anthropic_api_key: Optional[str] = Field(None)

    # Database Configuration
    database_url: str = Field("sqlite+aiosqlite:///./puzzles.db", description="Async SQLAlchemy URL")
    database_echo: bool = Field(False)

    # Redis Configuration
    redis_url: str = Field("redis://localhost:6379")
    enable_response_cache: bool = Field(True)
    cache_ttl_seconds: int = Field(86400)

    # Application Settings
    environment: str = Field("development")
    log_level: str = Field("INFO")
    api_host: str = Field("0.0.0.0")
    api_port: int = Field(8000)
    admin_api_token: Optional[str] = Field(None, description="Shared token for admin and cron routes")

    # Model Configuration
    default_generation_model: str = Field("gpt-4o")
    quality_model: str = Field("gpt-4o-mini")
    generation_temperature: float = Field(0.9)
    scoring_temperature: float = Field(0.3)
    max_tokens: int = Field(1024)
    estimated_cost_per_1k_tokens: float = Field(0.005)

    # Pipeline Settings
    max_generation_attempts: int = Field(2, ge=1)
    preview_max_attempts: int = Field(2, ge=1)
    max_preview_days: int = Field(90, ge=1)
    provider_timeout_seconds: float = Field(30.0, gt=0)
    store_timeout_seconds: float = Field(5.0, gt=0)
    uniqueness_lookback: int = Field(100, ge=0)
    quality_thresholds: QualityThresholds = Field(default_factory=QualityThresholds)

    # Provider retry (transient errors only)
    provider_retry_attempts: int = Field(3, ge=1)
    provider_retry_initial_delay: float = Field(1.0, ge=0)
    provider_retry_multiplier: float = Field(2.0, ge=1)
    provider_retry_max_delay: float = Field(10.0, ge=0)
    provider_retry_jitter: float = Field(0.5, ge=0)


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
