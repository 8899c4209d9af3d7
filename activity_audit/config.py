"""Application configuration management."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./activity_audit.db"

    @property
    def async_database_url(self) -> str:
        """Get DATABASE_URL with asyncpg driver for async SQLAlchemy.

        Converts postgresql:// to postgresql+asyncpg:// automatically.
        This allows flexibility in how the DATABASE_URL is provided.
        """
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.DATABASE_URL

    # Application
    ENVIRONMENT: str = "development"  # development, staging, or production
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Session lifetime
    SESSION_EXPIRY_HOURS: int = 24

    # Retention (days)
    SESSION_RETENTION_DAYS: int = 30
    ACTIVITY_RETENTION_DAYS: int = 90

    # Sweep schedule
    SWEEP_INTERVAL_MINUTES: int = 60  # retention + impersonation cleanup
    SESSION_SWEEP_INTERVAL_MINUTES: int = 5  # expired session sweep
    SCHEDULER_ENABLED: bool = True  # Run sweeps inside the API process (disable when run_scheduler.py is used)

    # Impersonation
    IMPERSONATION_MAX_DURATION_HOURS: int = 24
    IMPERSONATION_SESSION_HOURS: int = 2

    # Statistics
    RECENTLY_ACTIVE_HOURS: int = 24

    # Activity tracking
    ACTIVITY_TRACKING_ENABLED: bool = True
    ACTIVITY_TRACK_FAILED_REQUESTS: bool = True
    ACTIVITY_MAX_METADATA_BYTES: int = 10240  # 10KB
    ACTIVITY_EXCLUDE_PATHS: List[str] = [
        "/health",
        "/metrics",
        "/favicon.ico",
        "/robots.txt",
        "/sitemap.xml",
        "/_next/",
        "/static/",
        "/assets/",
        "/public/",
        "/uploads/",
        "/downloads/",
    ]
    ACTIVITY_SENSITIVE_FIELDS: List[str] = []  # Extra denylist patterns (regex)

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
