"""
Application configuration using pydantic-settings.
"""

from pathlib import Path
from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find .env file by checking multiple locations."""
    # Try relative to this file (server/automatenance/config.py)
    current_dir = Path(__file__).parent
    candidates = [
        current_dir / ".env",  # server/automatenance/.env
        current_dir.parent / ".env",  # server/.env
        current_dir.parent.parent / ".env",  # project root/.env
    ]

    for candidate in candidates:
        if candidate.exists():
            return str(candidate)

    # Default to project root
    return str(current_dir.parent.parent / ".env")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8080",
    ]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = ""  # Must be set in .env file

    # Redis (AI cache + daily refresh counters)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_TIMEOUT: float = 2.0  # seconds per operation
    REDIS_MAX_CONNECTIONS: int = 20

    # Identity provider (bearer token -> user)
    AUTH_SERVER_URL: str = ""
    AUTH_API_KEY: str = ""
    AUTH_TIMEOUT_SECONDS: float = 5.0

    # OpenAI
    OPENAI_API_KEY: str = ""  # Empty disables AI refinement
    OPENAI_PREDICTION_MODEL: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE: float = 0.4
    OPENAI_MAX_TOKENS: int = 500
    OPENAI_TIMEOUT_SECONDS: float = 20.0

    # Prediction engine
    PREDICTION_CACHE_TTL: int = 86400  # 1 day
    REFRESH_COUNTER_TTL: int = 86400  # 1 day
    AI_CACHE_RETENTION_GRACE_SECONDS: int = 86400  # Redis keeps dead entries this long past TTL
    PLAN_DAILY_REFRESH_BUDGETS: Dict[str, int] = {
        "free": 0,
        "pro": 50,
        "premium": 50,
    }
    MAX_PREDICTIONS_PER_VEHICLE: int = 6
    RAG_SNIPPET_LIMIT: int = 3
    RAG_SNIPPET_CHARS: int = 700
    BASELINE_HINT_CHARS: int = 1500


settings = Settings()
