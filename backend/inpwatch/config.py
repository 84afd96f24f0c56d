"""Application configuration using Pydantic settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Database
    database_url: str = "sqlite:///./inpwatch.db"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"

    # CORS
    allowed_origins: str = "http://localhost:3000"

    # Redis (for ARQ worker and rollup locks)
    redis_url: str = "redis://127.0.0.1:6379"

    # Retention horizons
    raw_retention_days: int = 30
    rollup_retention_days: int = 180

    # Rollup job
    rollup_use_native_percentiles: bool = True
    rollup_verify_native: bool = False
    rollup_batch_size: int = 1000
    rollup_cron_hour: int = 0
    rollup_cron_minute: int = 15
    # ARQ job timeout; the per-day Redis lock outlives it
    rollup_job_timeout_seconds: int = 3600

    # Reporting
    prefer_rollups: bool = True
    query_max_limit: int = 2000
    default_lookback_days: int = 7
    default_min_events: int = 5
    default_limit: int = 50
    export_chunk_size: int = 500

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]


settings = Settings()
