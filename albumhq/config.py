"""
Application configuration using environment variables.
"""
import os
import secrets
import tempfile
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional

_GENERATED_SECRET = secrets.token_urlsafe(32)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "AlbumHQ API"
    debug: bool = False
    environment: str = "development"

    # Security
    secret_key: str = os.getenv("SECRET_KEY", _GENERATED_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 1 day
    refresh_token_expire_days: int = 14

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./albumhq.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    login_rate_limit: str = "10/minute"
    login_max_failures: int = 3
    login_failure_window_seconds: int = 120
    login_block_seconds: int = 300

    # Storage
    upload_root: str = "/uploads"
    max_upload_bytes: int = 50 * 1024 * 1024
    max_cover_bytes: int = 10 * 1024 * 1024
    max_avatar_bytes: int = 5 * 1024 * 1024
    signed_url_expire_seconds: int = 15 * 60

    # Worker
    run_worker: Optional[bool] = None  # None = enabled only in production
    worker_poll_interval: float = 4.0
    worker_concurrency: int = 2
    worker_max_attempts: int = 3
    worker_lease_seconds: int = 600
    worker_retry_backoff_seconds: float = 5.0
    worker_shutdown_grace: float = 4.0
    worker_health_file: str = os.path.join(tempfile.gettempdir(), "albumhq-worker-health.json")
    worker_heartbeat_max_age: float = 20.0

    # External tools (heif-convert, ffmpeg, ffprobe)
    command_timeout_seconds: float = 120.0
    command_max_concurrency: int = 2

    # Notification stream
    sse_poll_interval: float = 3.0
    sse_heartbeat_interval: float = 15.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def worker_enabled(self) -> bool:
        if self.run_worker is None:
            return self.environment == "production"
        return self.run_worker


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Validate secret key on startup
settings = get_settings()
if settings.environment == "production" and settings.secret_key == _GENERATED_SECRET:
    raise ValueError(
        "SECRET_KEY must be set in production! "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
