"""
Application configuration using environment variables.
"""
import os
import secrets
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Pulse Blog API"
    debug: bool = False
    environment: str = "development"

    # Security
    secret_key: str = os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60  # 1 hour
    refresh_token_expire_days: int = 7

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./pulse.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    login_rate_limit: str = "5/minute"

    # Scheduler
    scheduler_autostart: bool = True
    scheduler_poll_seconds: float = 30.0
    scheduler_timezone: str = "America/Sao_Paulo"
    generation_slots: str = "08:00,14:00,20:00"  # daily cadence, local to scheduler_timezone
    auto_generation_enabled: bool = True  # default until an admin toggles it
    auto_slot_grace_minutes: int = 60
    recover_interrupted_jobs: bool = True

    # Generation
    blog_agent_id: str = "blog-writer"
    generation_timeout_seconds: float = 60.0
    generation_max_attempts: int = 3
    generation_concurrency: int = 2
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0
    slug_max_attempts: int = 50

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Validate secret key on startup
settings = get_settings()
if settings.environment == "production" and "SECRET_KEY" not in os.environ:
    raise ValueError(
        "SECRET_KEY must be set in production! "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
