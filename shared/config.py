"""Configuration management for tipscore."""
import os
from pydantic import BaseModel


class Config(BaseModel):
    """Application configuration loaded from environment variables."""
    DB_PATH: str = "data/tipscore.db"
    PRICE_FEED_URL: str = "http://localhost:8900"
    PRICE_FEED_TIMEOUT: float = 10.0
    SCORE_LOOKBACK_DAYS: int = 365
    RECENCY_HALF_LIFE_DAYS: float = 90.0
    MIN_TIPS_FOR_RATING: int = 20
    MAX_EXPECTED_TIPS: int = 2000
    WORKER_CONCURRENCY: int = 10
    JOB_MAX_RETRIES: int = 3
    JOB_RETRY_BASE_SECONDS: float = 2.0
    EVALUATION_INTERVAL_SECONDS: int = 300
    EXPIRATION_INTERVAL_SECONDS: int = 3600
    SNAPSHOT_TIMEZONE: str = "UTC"
    PRICE_RETENTION_DAYS: int = 30
    DASHBOARD_PORT: int = 8080
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            DB_PATH=os.getenv("DB_PATH", "data/tipscore.db"),
            PRICE_FEED_URL=os.getenv("PRICE_FEED_URL", "http://localhost:8900"),
            PRICE_FEED_TIMEOUT=float(os.getenv("PRICE_FEED_TIMEOUT", "10")),
            SCORE_LOOKBACK_DAYS=int(os.getenv("SCORE_LOOKBACK_DAYS", "365")),
            RECENCY_HALF_LIFE_DAYS=float(os.getenv("RECENCY_HALF_LIFE_DAYS", "90")),
            MIN_TIPS_FOR_RATING=int(os.getenv("MIN_TIPS_FOR_RATING", "20")),
            MAX_EXPECTED_TIPS=int(os.getenv("MAX_EXPECTED_TIPS", "2000")),
            WORKER_CONCURRENCY=int(os.getenv("WORKER_CONCURRENCY", "10")),
            JOB_MAX_RETRIES=int(os.getenv("JOB_MAX_RETRIES", "3")),
            JOB_RETRY_BASE_SECONDS=float(os.getenv("JOB_RETRY_BASE_SECONDS", "2")),
            EVALUATION_INTERVAL_SECONDS=int(os.getenv("EVALUATION_INTERVAL_SECONDS", "300")),
            EXPIRATION_INTERVAL_SECONDS=int(os.getenv("EXPIRATION_INTERVAL_SECONDS", "3600")),
            SNAPSHOT_TIMEZONE=os.getenv("SNAPSHOT_TIMEZONE", "UTC"),
            PRICE_RETENTION_DAYS=int(os.getenv("PRICE_RETENTION_DAYS", "30")),
            DASHBOARD_PORT=int(os.getenv("DASHBOARD_PORT", "8080")),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def retry_delays(self) -> list[float]:
        """Backoff delays (seconds) between job attempts."""
        return [self.JOB_RETRY_BASE_SECONDS * (2 ** i) for i in range(self.JOB_MAX_RETRIES)]
