# repchain/config.py

from __future__ import annotations
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # --- Core ---
    SECRET_KEY: str = Field("change-me", description="JWT signing key")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60 * 24 * 7, ge=5)
    DEBUG: bool = True  # set False in prod
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    DATABASE_URL: str = Field("sqlite:///./repchain.db")
    # Alembic reads DATABASE_URL from env; kept separate on purpose.

    # --- GitHub ---
    GITHUB_API_BASE: str = "https://api.github.com"
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_TIMEOUT_SECONDS: float = Field(10.0, gt=0)

    # --- Auto-release scheduler ---
    AUTO_RELEASE_ENABLED: bool = True
    AUTO_RELEASE_INTERVAL_MINUTES: int = Field(60, ge=1)
    REVIEW_PERIOD_HOURS: int = 72
    GRACE_PERIOD_HOURS: int = 24  # total window is review + grace
    MIN_JOB_AGE_HOURS: int = 24
    REVIEW_WARNING_HOURS: List[int] = Field(default_factory=lambda: [24, 48, 60])

    # --- Reputation ---
    # No review subsystem yet; every user gets this neutral value.
    REPUTATION_REVIEW_SCORE: int = Field(500, ge=0, le=1000)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
