"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./leaguepicks.db"

    # API-Football (direct API-Sports host or RapidAPI)
    RAPIDAPI_KEY: str = ""
    RAPIDAPI_HOST: str = "v3.football.api-sports.io"

    # Provider pacing (0 = no delay between requests)
    API_REQUESTS_PER_MINUTE: int = 300
    API_MAX_RETRIES: int = 3
    API_RETRY_DELAY_SECONDS: float = 2.0

    # ═══════════════════════════════════════════════════════════════
    # League data (standings / top scorers)
    # ═══════════════════════════════════════════════════════════════
    LEAGUE_DATA_CACHE_TTL_SECONDS: float = 900.0  # 15 min, bounds provider usage
    LEAGUE_DATA_FETCH_TIMEOUT_SECONDS: float = 20.0  # Timeout = fetch failure (defer)

    # ═══════════════════════════════════════════════════════════════
    # Round scoring
    # ═══════════════════════════════════════════════════════════════
    # Lease on the 'scoring' status. A crashed run's lock expires after this.
    SCORING_LOCK_LEASE_SECONDS: int = 600

    # Scheduled job
    ROUND_SCORING_ENABLED: bool = True
    ROUND_SCORING_INTERVAL_MINUTES: int = 15

    # Season completion + winner determination job
    SEASON_COMPLETION_ENABLED: bool = True
    SEASON_COMPLETION_INTERVAL_MINUTES: int = 60

    # ═══════════════════════════════════════════════════════════════
    # Observability
    # ═══════════════════════════════════════════════════════════════
    # Prometheus exposition port for the scheduler process (0 = disabled)
    METRICS_PORT: int = 9108

    # Sentry (no DSN = disabled; SENTRY_ENABLED=false is the kill switch)
    SENTRY_DSN: str = ""
    SENTRY_ENABLED: bool = True
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_RELEASE: str = "unknown"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.05

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
