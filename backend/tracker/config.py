"""Application configuration. All sensitive config from .env."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """App settings from environment."""

    # Database - default SQLite for easy local dev; use DATABASE_URL for PostgreSQL
    database_url: str = "sqlite:///./job_tracker.db"

    # SQLAlchemy pooling (Postgres only)
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout_s: int = 30
    db_pool_recycle_s: int = 1800

    # SQLite concurrency tuning (used when DATABASE_URL starts with sqlite://)
    sqlite_busy_timeout_ms: int = 5000

    # Google OAuth client used to refresh stored Gmail tokens
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_uri: str = "https://oauth2.googleapis.com/token"

    # Gmail fetch limits
    gmail_max_results_per_query: int = 30
    gmail_days_back: int = 90
    gmail_body_max_chars: int = 2000

    # AI - set OPENAI_API_KEY for OpenAI classification
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.0
    openai_timeout_s: float = 30.0

    # Sync engine
    sync_min_confidence: float = 0.6
    # Abort the batch after this many seconds (0 = no limit). Already-logged emails stay logged.
    sync_run_timeout_s: int = 0
    # Classifier calls run in a thread pool; store writes stay single-threaded.
    classification_max_concurrency: int = 4
    sync_interval_minutes: int = 30
    # Cross-process lock TTL; a running pass renews it before each classification chunk.
    sync_lock_ttl_s: int = 900

    # Redis (Celery broker and cross-process sync lock)
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: Optional[str] = None  # defaults to redis_url if not set

    # API key for the HTTP surface (empty = open, local dev only)
    api_key_header: str = "X-API-Key"
    api_key: str = ""

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url


settings = Settings()
