from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Settings
    APP_NAME: str = "Returns Desk"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Upstream returns service
    RETURNS_SERVICE_URL: str = "http://localhost:54321/functions/v1/ml-returns"
    RETURNS_SERVICE_TOKEN: Optional[str] = None  # Sent as Bearer token when set
    RETURNS_SERVICE_TIMEOUT: float = 30.0  # Seconds per request attempt

    # Durable storage (snapshot + annotations)
    STORAGE_BACKEND: str = "file"  # Options: memory, file, redis
    STORAGE_PATH: str = ".returnsdesk"  # Directory for the file backend
    STORAGE_NAMESPACE: str = "returnsdesk"
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"

    # Fetch orchestration
    FRESHNESS_WINDOW_SECONDS: float = 60.0  # Cached pages are served without a request inside this window
    CACHE_RETENTION_MINUTES: int = 30  # Stale pages are kept this long for stale-while-revalidate
    FETCH_MAX_RETRIES: int = 2  # Immediate retries after the first failed attempt
    FILTER_DEBOUNCE_MS: int = 500  # Quiet period before filter edits trigger a fetch
    DEFAULT_PAGE_SIZE: int = 50

    # Retention
    SNAPSHOT_TTL_MINUTES: int = 60
    ANNOTATION_RETENTION_DAYS: int = 7

    # Maintenance jobs
    ANNOTATION_PRUNE_INTERVAL_HOURS: int = 6
    SCHEDULER_ENABLED: bool = True
    CACHE_PURGE_INTERVAL_MINUTES: int = 5

    # CORS
    CORS_ORIGINS: str = "*"  # Comma separated list of allowed origins

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @field_validator('STORAGE_BACKEND', mode='before')
    @classmethod
    def normalize_storage_backend(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in ("memory", "file", "redis"):
                raise ValueError(f"Unsupported storage backend: {v}")
        return v

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
