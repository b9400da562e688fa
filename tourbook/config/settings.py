"""
Application settings and configuration
"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Basic app settings
    DEBUG: bool = Field(default=False)
    APP_NAME: str = Field(default="Tourbook Scheduling Engine")

    # Server settings
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # Database settings
    DATABASE_URL: str = Field(default="sqlite:///./tourbook.db")
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=20)
    DB_LOCK_TIMEOUT_SECONDS: float = Field(default=5.0)  # wait for a provider lock

    # Celery settings
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/1")
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/2")
    CELERY_TASK_SERIALIZER: str = Field(default="json")
    CELERY_TASK_ALWAYS_EAGER: bool = Field(default=False)

    # Scheduling defaults
    DEFAULT_TIMEZONE: str = Field(default="UTC")
    DEFAULT_BUFFER_MINUTES: int = Field(default=15)
    DEFAULT_SLOT_DURATION_MINUTES: int = Field(default=60)
    DEFAULT_SLOT_INTERVAL_MINUTES: int = Field(default=30)
    MIN_BOOKING_LEAD_MINUTES: int = Field(default=0)
    MAX_BOOKING_HORIZON_DAYS: int = Field(default=90)
    MAX_APPOINTMENT_MINUTES: int = Field(default=480)  # 8 hours

    # Store retry policy (applied at the API boundary)
    STORE_RETRY_ATTEMPTS: int = Field(default=3)
    STORE_RETRY_MAX_WAIT_SECONDS: float = Field(default=2.0)

    # Outbound notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_WEBHOOK_SECRET: str = Field(default="change-this-in-production")
    NOTIFICATION_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Monitoring settings
    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # allows extra env vars without breaking
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Convenience accessor for settings
settings = get_settings()
