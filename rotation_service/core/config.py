# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Core configuration — all env-driven, zero hardcode.
Single source of truth for every tunable parameter.
"""

import os


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "rotation-service")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "3.0.0")
    SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "8003"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./rotations.db")
    POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "300"))

    NOTIFICATION_SERVICE_URL: str = os.getenv(
        "NOTIFICATION_SERVICE_URL", "http://notification-service:8004"
    )
    NOTIFICATION_TIMEOUT: float = float(os.getenv("NOTIFICATION_TIMEOUT", "3.0"))
    NOTIFICATION_CHANNEL: str = os.getenv("NOTIFICATION_CHANNEL", "slack")

    # Notification and wake-signal delivery: fixed spacing, no backoff
    RETRY_ATTEMPTS: int = int(os.getenv("RETRY_ATTEMPTS", "3"))
    RETRY_DELAY_SECONDS: float = float(os.getenv("RETRY_DELAY_SECONDS", "60"))

    FALLBACK_POLL_SECONDS: float = float(os.getenv("FALLBACK_POLL_SECONDS", "21600"))
    ERROR_RETRY_SECONDS: float = float(os.getenv("ERROR_RETRY_SECONDS", "60"))
    RESUME_SCHEDULERS_ON_STARTUP: bool = (
        os.getenv("RESUME_SCHEDULERS_ON_STARTUP", "true").lower() == "true"
    )

    DEFAULT_HISTORY_LIMIT: int = int(os.getenv("DEFAULT_HISTORY_LIMIT", "100"))
    MAX_HISTORY_SIZE: int = int(os.getenv("MAX_HISTORY_SIZE", "10000"))

    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
