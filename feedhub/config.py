"""
Centralized Configuration for FeedHub.

All environment variables are managed here using Pydantic Settings.
This provides:
- Type validation
- Default values
- Single source of truth for feed tuning knobs

Usage:
    from feedhub.config import settings

    ttl = settings.feed_cache_ttl_seconds
    workers = settings.ingestion_max_workers
"""

from typing import Optional, Literal, List
from pydantic import Field, field_validator, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with FEEDHUB_ where applicable.
    """

    # =============================================================================
    # Application Environment
    # =============================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
        validation_alias="FEEDHUB_ENVIRONMENT"
    )

    testing: bool = Field(
        default=False,
        description="Enable testing mode",
        validation_alias="TESTING"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validation_alias="FEEDHUB_LOG_LEVEL"
    )

    allowed_origins: str = Field(
        default="*",
        description="CORS allowed origins (comma-separated or '*')",
        validation_alias="FEEDHUB_ALLOWED_ORIGINS"
    )

    # =============================================================================
    # Database & Cache
    # =============================================================================

    database_url: str = Field(
        default="sqlite:///./feedhub.db",
        description="Database connection URL (PostgreSQL or SQLite)",
        validation_alias="DATABASE_URL"
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the feed cache",
        validation_alias="REDIS_URL"
    )

    celery_broker_url: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to redis_url)",
        validation_alias="CELERY_BROKER_URL"
    )

    celery_result_backend: Optional[str] = Field(
        default=None,
        description="Celery result backend (defaults to redis_url)",
        validation_alias="CELERY_RESULT_BACKEND"
    )

    # =============================================================================
    # Scheduler & Providers
    # =============================================================================

    cron_secret: Optional[str] = Field(
        default=None,
        description="Shared secret expected as 'Authorization: Bearer <secret>' on the cron endpoint",
        validation_alias="CRON_SECRET"
    )

    youtube_api_key: Optional[str] = Field(
        default=None,
        description="YouTube Data API v3 key",
        validation_alias="YOUTUBE_API_KEY"
    )

    use_yt_dlp: bool = Field(
        default=False,
        description="Fetch YouTube sources with yt-dlp instead of the Data API",
        validation_alias="USE_YT_DLP"
    )

    provider_request_timeout_seconds: int = Field(
        default=15,
        description="Timeout for a single provider HTTP request",
        validation_alias="FEEDHUB_PROVIDER_TIMEOUT"
    )

    user_agent: str = Field(
        default="FeedHub/1.0 (+https://github.com/feedhub)",
        description="User-Agent sent to RSS and podcast hosts",
        validation_alias="FEEDHUB_USER_AGENT"
    )

    # =============================================================================
    # Feed Generation
    # =============================================================================

    feed_cache_ttl_seconds: int = Field(
        default=300,
        description="Lifetime of a cached per-user feed",
        validation_alias="FEEDHUB_FEED_CACHE_TTL"
    )

    feed_max_items: int = Field(
        default=200,
        description="Maximum number of items in one feed response",
        validation_alias="FEEDHUB_FEED_MAX_ITEMS"
    )

    feed_candidate_pool_size: int = Field(
        default=2000,
        description="Maximum candidates loaded from the store before filtering",
        validation_alias="FEEDHUB_CANDIDATE_POOL_SIZE"
    )

    feed_recency_days: int = Field(
        default=7,
        description="Items published within this window count as recent, older ones as backlog",
        validation_alias="FEEDHUB_RECENCY_DAYS"
    )

    default_backlog_ratio: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Backlog share used when a user has no preferences row",
        validation_alias="FEEDHUB_DEFAULT_BACKLOG_RATIO"
    )

    default_diversity_limit: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Per-source cap used when a user has no preferences row",
        validation_alias="FEEDHUB_DEFAULT_DIVERSITY_LIMIT"
    )

    not_now_cooldown_hours: float = Field(
        default=24.0,
        ge=0.0,
        description="Hours before a 'not now' item may resurface in the feed",
        validation_alias="FEEDHUB_NOT_NOW_COOLDOWN_HOURS"
    )

    # =============================================================================
    # Ingestion
    # =============================================================================

    fetch_recent_days: int = Field(
        default=7,
        description="Window passed to adapters when fetching recent content",
        validation_alias="FEEDHUB_FETCH_RECENT_DAYS"
    )

    backlog_refresh_days: int = Field(
        default=7,
        description="Days since the last fetch after which backlog is fetched again",
        validation_alias="FEEDHUB_BACKLOG_REFRESH_DAYS"
    )

    backlog_max_items: int = Field(
        default=500,
        description="Upper bound on items returned by a backlog fetch",
        validation_alias="FEEDHUB_BACKLOG_MAX_ITEMS"
    )

    ingestion_max_workers: int = Field(
        default=4,
        ge=1,
        description="Concurrent source fetches in a batch",
        validation_alias="FEEDHUB_INGESTION_WORKERS"
    )

    fetch_interval_minutes: int = Field(
        default=30,
        description="Celery beat interval for fetching all sources",
        validation_alias="FEEDHUB_FETCH_INTERVAL_MINUTES"
    )

    rate_limit_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per provider call while the provider is throttling",
        validation_alias="FEEDHUB_RATE_LIMIT_MAX_ATTEMPTS"
    )

    rate_limit_backoff_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Base delay of the exponential backoff between throttled attempts",
        validation_alias="FEEDHUB_RATE_LIMIT_BACKOFF"
    )

    rate_limit_error_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive throttled fetches before a source is marked errored",
        validation_alias="FEEDHUB_RATE_LIMIT_ERROR_THRESHOLD"
    )

    # =============================================================================
    # Computed Properties
    # =============================================================================

    @property
    def effective_celery_broker_url(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str:
        """Get Celery result backend, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    @property
    def cors_origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # =============================================================================
    # Validators
    # =============================================================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Convert postgres:// to postgresql:// for SQLAlchemy compatibility."""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper


# =============================================================================
# Global Settings Instance
# =============================================================================

settings = Settings()


def get_settings() -> Settings:
    """
    Get settings instance.

    Useful for dependency injection in FastAPI:
        @app.get("/")
        def endpoint(settings: Settings = Depends(get_settings)):
            ...
    """
    return settings
