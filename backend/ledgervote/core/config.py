"""
Application configuration settings.
"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "Ledger Vote"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1

    # Ledger host storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./ledger.db"
    LEDGER_OWNER: str = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"

    # Caller identity tokens
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Ledger client
    LEDGER_URL: str = "http://127.0.0.1:8000"
    LEDGER_TIMEOUT_SECONDS: float = 10.0

    # Local admin pre-check (advisory only, the ledger still decides)
    ADMIN_ADDRESSES: List[str] = []
    ADMIN_OVERRIDE: bool = False

    # Polling and retry
    POLL_INTERVAL_SECONDS: float = 5.0
    RESULT_RETRY_ATTEMPTS: int = 10
    RESULT_RETRY_INTERVAL_SECONDS: float = 1.0
    RESULT_RETRY_BACKOFF: float = 1.0
    CLOCK_RETRY_ATTEMPTS: int = 3
    CLOCK_RETRY_INTERVAL_SECONDS: float = 0.5
    LEDGER_RETRY_ATTEMPTS: int = 3
    LEDGER_RETRY_INTERVAL_SECONDS: float = 0.5

    # Voting period scheduling
    MIN_START_LEAD_SECONDS: int = 60
    MIN_PERIOD_SECONDS: int = 60

    # Local session state
    SESSION_STATE_PATH: Optional[str] = None

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
