"""
Snapshot Tracker Settings
Load from environment variables
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings from environment"""

    # ======================
    # Backend API
    # ======================
    API_BASE_URL: str = "http://localhost:3000"
    API_TOKEN: Optional[str] = None
    ACCOUNT_ID: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # ======================
    # Paging
    # ======================
    DEFAULT_PAGE_LIMIT: int = 25
    MAX_PAGE_LIMIT: int = 500

    # ======================
    # Recalculation polling
    # ======================
    RECALC_WARMUP_SECONDS: float = 2.0
    RECALC_POLL_INTERVAL_SECONDS: float = 3.0
    RECALC_BACKOFF_FACTOR: float = 1.5
    RECALC_MAX_POLL_INTERVAL_SECONDS: float = 30.0
    RECALC_MAX_POLL_ATTEMPTS: int = 40
    RECALC_MAX_CONSECUTIVE_ERRORS: int = 3
    RECALC_CONCURRENCY_POLICY: str = "reject"

    # ======================
    # Logging
    # ======================
    LOG_LEVEL: str = "INFO"

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SNAPSHOT_",
        case_sensitive=True,
        extra="ignore",
    )


def get_settings(**overrides) -> Settings:
    """Build a fresh settings object; callers own it"""
    return Settings(**overrides)
