"""
HollyAid Backend - Configuration
All settings loaded from environment variables (or .env).
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Database ---
    # postgresql+asyncpg://... in production, SQLite for local runs
    DATABASE_URL: str = "sqlite+aiosqlite:///./hollyaid.db"

    # Connection pool limits per process (ignored for SQLite)
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5

    # --- Logging / Sentry ---
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None  # JSON log file, console only when unset
    SENTRY_DSN: Optional[str] = None

    # --- Booking rules ---
    DEFAULT_SESSION_MINUTES: int = 60
    MESSAGE_CAP: int = 10
    LOW_MINUTES_THRESHOLD: float = 0.80
    PENDING_EXPIRY_DAYS: int = 14
    INVITE_TTL_HOURS: int = 24

    # --- Outbound notifications (email/WhatsApp functions) ---
    NOTIFY_WEBHOOK_URL: str = ""
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    # --- Payment authority ---
    PAYMENT_API_URL: str = ""
    PAYMENT_API_KEY: str = ""
    # Companies whose admin email is on one of these domains skip checkout
    TEST_ACCOUNT_DOMAINS: list[str] = ["hollyaid.com", "shakeapp.today", "aptw.us"]

    # --- Meetings ---
    MEETING_ROOM_PREFIX: str = "hollyaid"

    # --- App ---
    INTERNAL_SECRET: str = ""  # guards /internal/* scheduler endpoints
    FRONTEND_URL: str = "http://localhost:5173"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
