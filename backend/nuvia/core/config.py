from pydantic_settings import BaseSettings
from typing import Optional, List
from functools import lru_cache
from datetime import timedelta
import os


class Settings(BaseSettings):
    """
    Application settings and configuration
    """

    # Application
    app_name: str = "Nuvia Collaboration API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = int(os.getenv("PORT", "8000"))

    # Environment detection
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{extra[component]}</cyan>:<cyan>{function}</cyan> - <level>{message}</level> <dim>{extra[context]}</dim>"
    )
    log_rotation: str = "50 MB"
    log_retention: str = "14 days"
    error_log_dir: Optional[str] = "logs"

    # CORS
    allowed_origins: List[str] = ["*"]
    allow_credentials: bool = True

    # Socket.IO transport
    socketio_path: str = "socket.io"
    ping_interval: int = 25  # seconds
    ping_timeout: int = 60  # seconds

    # Collaboration sessions
    session_timeout_minutes: int = 30
    sweep_interval_minutes: int = 15
    cursor_refreshes_activity: bool = True
    max_content_size: int = 1024 * 1024  # 1MB

    # Production optimization flags
    enable_docs: bool = os.getenv("ENABLE_DOCS", "true").lower() == "true"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Create settings instance with caching
@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings
    """
    return Settings()


settings = get_settings()


def get_session_timeout() -> timedelta:
    """Inactivity window after which the sweeper evicts a session"""
    return timedelta(minutes=get_settings().session_timeout_minutes)


def get_sweep_interval() -> timedelta:
    """Delay between two sweeper passes"""
    return timedelta(minutes=get_settings().sweep_interval_minutes)
