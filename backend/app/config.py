"""
Application configuration using Pydantic Settings.
All config is loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── App ──────────────────────────────────────────────
    APP_NAME: str = "campus-handbook-backend"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"  # comma-separated

    # ── Supabase ─────────────────────────────────────────
    SUPABASE_URL: str
    SUPABASE_SERVICE_KEY: str = ""  # service_role key, used by the API and the workers

    # ── Security ─────────────────────────────────────────
    JWT_SECRET_KEY: str  # shared with the identity provider
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 1440  # 24 hours

    # ── LLM (Provider-Agnostic) ──────────────────────────
    LLM_PROVIDER: str = "gemini"  # gemini | openai | groq
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_API_KEY: str = ""
    LLM_TEMPERATURE: float = 0.2

    # ── Handbook pipeline ────────────────────────────────
    HANDBOOK_BUCKET: str = "handbooks"
    HANDBOOK_MAX_BYTES: int = 100 * 1024 * 1024  # 100MB, same as bucket limit
    HANDBOOK_LEASE_TTL_SECONDS: int = 15 * 60
    HANDBOOK_REAPER_INTERVAL_SECONDS: int = 60
    HANDBOOK_CLAIM_BATCH_SIZE: int = 5  # candidates fetched per claim attempt

    # ── Background jobs ──────────────────────────────────
    BACKGROUND_JOBS_ENABLED: bool = True
    EXTRACTION_WORKER_COUNT: int = 2
    EXTRACTION_POLL_INTERVAL_SECONDS: int = 10

    # ── Campus content ───────────────────────────────────
    CAMPUS_CACHE_TTL_SECONDS: int = 300
    CAMPUS_CACHE_MAXSIZE: int = 256
    CAMPUS_PUBLISH_MAX_ATTEMPTS: int = 5
    CAMPUS_REFRESH_INTERVAL_HOURS: int = 0  # 0 = scheduled refresh disabled
    CAMPUS_STALE_AFTER_HOURS: int = 24 * 7

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (singleton)."""
    return Settings()
