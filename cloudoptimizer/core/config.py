from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """
    Main configuration for CloudOptimizer.
    Uses Pydantic-Settings for environment variable parsing from .env.

    Every threshold the analysis pipeline relies on lives here so it can be
    tuned per deployment without code changes.
    """
    APP_NAME: str = "CloudOptimizer"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    TESTING: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./cloudoptimizer.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5

    # Cache (Redis for production, in-memory for dev)
    REDIS_URL: Optional[str] = None  # e.g., redis://localhost:6379
    ANALYSIS_CACHE_TTL_SECONDS: int = 300
    ANALYSIS_CACHE_LIMITED_TTL_SECONDS: int = 60  # no-history results, history may land soon
    ANALYSIS_CACHE_MAX_ENTRIES: int = 10000  # in-memory store only

    # Remote forecast backend (optional, statistical fallback is always available)
    FORECAST_ENDPOINT: Optional[str] = None
    FORECAST_ENDPOINT_KEY: Optional[str] = None
    FORECAST_TIMEOUT_SECONDS: float = 10.0
    FORECAST_MAX_RETRIES: int = 2

    # Forecasting
    FORECAST_MIN_DATA_POINTS: int = 14
    FORECAST_RECENT_WINDOW_DAYS: int = 30
    FORECAST_DATA_WEIGHT: float = 0.4
    FORECAST_VARIANCE_WEIGHT: float = 0.4
    FORECAST_HORIZON_WEIGHT: float = 0.2
    ANOMALY_Z_THRESHOLD: float = 2.5

    # Utilization classification
    UTILIZATION_MIN_DATA_POINTS: int = 7
    IDLE_THRESHOLD: float = 0.05
    UNDERUTILIZED_THRESHOLD: float = 0.20
    OVERUTILIZED_THRESHOLD: float = 0.80
    IDLE_DAYS_THRESHOLD: int = 7
    TREND_MIN_DATA_POINTS: int = 14
    TREND_STABLE_DELTA: float = 0.05

    # Recommendation engine
    ANALYSIS_LOOKBACK_DAYS: int = 30
    ANALYSIS_FORECAST_HORIZON_DAYS: int = 30
    MIN_SAVINGS_THRESHOLD: float = 10.0
    MIN_CONFIDENCE_THRESHOLD: float = 0.6
    RESERVATION_MIN_FORECAST_CONFIDENCE: float = 0.8
    RESERVATION_SAVINGS_RATE: float = 0.30
    SCHEDULING_SAVINGS_RATE: float = 0.50
    NO_HISTORY_CONFIDENCE: float = 0.5
    RECOMMENDATION_TTL_DAYS: int = 7

    # Savings validation
    VALIDATION_THRESHOLD: float = 0.5
    PARTIAL_THRESHOLD: float = 0.25
    VALIDATION_COMPARISON_DAYS: int = 14
    VALIDATION_STABILIZATION_DAYS: int = 7
    VALIDATION_MIN_AFTER_DAYS: int = 7
    VALIDATION_DELAY_DAYS: int = 30

    # Scheduler
    VALIDATION_CRON_HOUR: int = 2
    VALIDATION_CRON_MINUTE: int = 0
    SCHEDULER_ENABLED: bool = True

    # Tenant preference defaults
    DEFAULT_MIN_SAVINGS_THRESHOLD: float = 10.0
    DEFAULT_INCLUDE_MULTI_CLOUD: bool = False

    # Pricing
    HOURS_PER_MONTH: int = 730

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True
    )

    @property
    def is_production(self) -> bool:
        return not self.DEBUG and not self.TESTING

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'Settings':
        """Fail-closed: refuse to start with thresholds that break classification ordering."""
        if not (0 < self.IDLE_THRESHOLD < self.UNDERUTILIZED_THRESHOLD < self.OVERUTILIZED_THRESHOLD <= 1):
            raise ValueError(
                "Utilization thresholds must satisfy 0 < IDLE_THRESHOLD < "
                "UNDERUTILIZED_THRESHOLD < OVERUTILIZED_THRESHOLD <= 1"
            )

        if not (0 <= self.PARTIAL_THRESHOLD < self.VALIDATION_THRESHOLD):
            raise ValueError("PARTIAL_THRESHOLD must be >= 0 and below VALIDATION_THRESHOLD")

        weight_sum = self.FORECAST_DATA_WEIGHT + self.FORECAST_VARIANCE_WEIGHT + self.FORECAST_HORIZON_WEIGHT
        if abs(weight_sum - 1.0) > 1e-6:
            raise ValueError(f"Forecast confidence weights must sum to 1.0, got {weight_sum:.4f}")

        if self.FORECAST_MIN_DATA_POINTS < 2 or self.UTILIZATION_MIN_DATA_POINTS < 1:
            raise ValueError("Minimum data point settings must be positive")

        return self


@lru_cache
def get_settings():
    """Returns a singleton instance of the application settings."""
    return Settings()
