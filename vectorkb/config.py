"""
Centralized Configuration for the vectorkb preference-learning engine.

All environment variables are managed here using Pydantic Settings.
This provides:
- Type validation
- Default values
- Single source of truth for learning constants

Usage:
    from vectorkb.config import settings

    window = settings.user_feedback_window_days
    cap = settings.max_preference_boost
"""

from typing import Dict, Literal, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Learning parameters are prefixed with PREF_ where applicable.
    """

    # =============================================================================
    # Application Environment
    # =============================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
        validation_alias="VECTORKB_ENVIRONMENT"
    )

    testing: bool = Field(
        default=False,
        description="Enable testing mode",
        validation_alias="TESTING"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validation_alias="VECTORKB_LOG_LEVEL"
    )

    # =============================================================================
    # Database
    # =============================================================================

    database_url: str = Field(
        default="sqlite:///./vectorkb.db",
        description="Database connection URL (PostgreSQL or SQLite)",
        validation_alias="DATABASE_URL"
    )

    # =============================================================================
    # Redis & Background Jobs
    # =============================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
        validation_alias="REDIS_URL"
    )

    celery_broker_url: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to redis_url)",
        validation_alias="CELERY_BROKER_URL"
    )

    celery_result_backend: Optional[str] = Field(
        default=None,
        description="Celery result backend URL (defaults to redis_url)",
        validation_alias="CELERY_RESULT_BACKEND"
    )

    enable_preference_caching: bool = Field(
        default=True,
        description="Cache preference snapshots in Redis",
        validation_alias="ENABLE_PREFERENCE_CACHING"
    )

    preference_cache_ttl_seconds: int = Field(
        default=300,
        description="Preference snapshot cache TTL in seconds",
        validation_alias="PREFERENCE_CACHE_TTL_SECONDS"
    )

    # =============================================================================
    # Signal Weights
    # =============================================================================

    signal_weight_overrides: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-signal weight overrides as JSON, e.g. {\"exported\": 2.5}",
        validation_alias="PREF_SIGNAL_WEIGHT_OVERRIDES"
    )

    max_feedback_weight: float = Field(
        default=10.0,
        gt=0,
        description="Largest absolute weight accepted on a single feedback submission",
        validation_alias="PREF_MAX_FEEDBACK_WEIGHT"
    )

    # =============================================================================
    # Bias Controls
    # =============================================================================

    max_preference_boost: float = Field(
        default=1.5,
        description="Upper bound for any tag or kind weight",
        validation_alias="PREF_MAX_BOOST"
    )

    diversity_minimum: float = Field(
        default=0.3,
        description="Floor for the diversity weight",
        validation_alias="PREF_DIVERSITY_MINIMUM"
    )

    quality_floor: float = Field(
        default=0.3,
        description="Floor for the quality threshold",
        validation_alias="PREF_QUALITY_FLOOR"
    )

    bias_threshold: float = Field(
        default=1.2,
        description="Absolute tag weight above which a tag is flagged as biased",
        validation_alias="PREF_BIAS_THRESHOLD"
    )

    # =============================================================================
    # Aggregation & Smoothing
    # =============================================================================

    ema_alpha: float = Field(
        default=0.1,
        gt=0.0,
        lt=1.0,
        description="Exponential moving average factor applied to new snapshots",
        validation_alias="PREF_EMA_ALPHA"
    )

    min_feedback_count: int = Field(
        default=10,
        description="Minimum feedback rows in the user window before preferences update",
        validation_alias="PREF_MIN_FEEDBACK_COUNT"
    )

    user_feedback_window_days: int = Field(
        default=30,
        description="Trailing window for per-user aggregation",
        validation_alias="PREF_USER_WINDOW_DAYS"
    )

    global_feedback_window_days: int = Field(
        default=7,
        description="Trailing window for global aggregation",
        validation_alias="PREF_GLOBAL_WINDOW_DAYS"
    )

    global_refresh_hours: int = Field(
        default=24,
        description="Minimum hours between global preference refreshes",
        validation_alias="PREF_GLOBAL_REFRESH_HOURS"
    )

    decay_factor: float = Field(
        default=0.95,
        description="Multiplier applied to tag weights on each decay run",
        validation_alias="PREF_DECAY_FACTOR"
    )

    decay_min_age_days: float = Field(
        default=7.0,
        description="Snapshots must be strictly older than this many days to decay",
        validation_alias="PREF_DECAY_MIN_AGE_DAYS"
    )

    freshness_half_life_days: float = Field(
        default=30.0,
        description="Half-life of the freshness score",
        validation_alias="PREF_FRESHNESS_HALF_LIFE_DAYS"
    )

    # =============================================================================
    # Recommendations
    # =============================================================================

    user_recommendation_count: int = Field(
        default=3,
        description="Number of user-sourced tag recommendations",
        validation_alias="PREF_USER_RECOMMENDATIONS"
    )

    global_recommendation_count: int = Field(
        default=2,
        description="Number of global-sourced tag recommendations",
        validation_alias="PREF_GLOBAL_RECOMMENDATIONS"
    )

    # =============================================================================
    # Maintenance
    # =============================================================================

    retention_days: int = Field(
        default=90,
        description="Events and feedback older than this are purged",
        validation_alias="PREF_RETENTION_DAYS"
    )

    deprecation_weight_threshold: float = Field(
        default=-0.5,
        description="Average feedback weight below which an object is deprecated",
        validation_alias="PREF_DEPRECATION_THRESHOLD"
    )

    deprecation_min_feedback: int = Field(
        default=5,
        description="Minimum feedback rows before an object can be deprecated",
        validation_alias="PREF_DEPRECATION_MIN_FEEDBACK"
    )

    deprecation_window_days: int = Field(
        default=30,
        description="Trailing window for the deprecation sweep",
        validation_alias="PREF_DEPRECATION_WINDOW_DAYS"
    )

    metrics_window_days: int = Field(
        default=30,
        description="Trailing window for quality and coverage metrics",
        validation_alias="PREF_METRICS_WINDOW_DAYS"
    )

    # =============================================================================
    # Computed Properties
    # =============================================================================

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing

    @property
    def effective_celery_broker_url(self) -> str:
        """Get Celery broker URL (falls back to redis_url)."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str:
        """Get Celery result backend URL (falls back to redis_url)."""
        return self.celery_result_backend or self.redis_url

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =============================================================================
    # Field Validators
    # =============================================================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Convert postgres:// to postgresql:// for SQLAlchemy compatibility."""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is uppercase and valid."""
        v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is lowercase."""
        return v.lower() if isinstance(v, str) else v


settings = Settings()


def get_settings() -> Settings:
    """
    Get settings instance (for dependency injection).

    Usage:
        @router.get("/endpoint")
        def endpoint(settings: Settings = Depends(get_settings)):
            ...
    """
    return settings


__all__ = ["settings", "get_settings", "Settings"]
