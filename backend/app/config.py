"""
RallyDesk Server Configuration

This file contains all server-side configurable settings.
Modify these values to tune the rally lifecycle behaviour.
"""

from dataclasses import dataclass, field
from typing import Optional
import os


@dataclass
class ServerConfig:
    """Server networking configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: tuple = (
        "http://localhost:5173",  # Vite default port
        "http://localhost:3000",  # Next.js / React dev server
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    )


@dataclass
class DatabaseConfig:
    """Database configuration."""
    # Overrides the default SQLite file in backend/data when set
    DATABASE_URL: Optional[str] = field(
        default_factory=lambda: os.environ.get("RALLYDESK_DATABASE_URL") or None
    )
    ECHO_SQL: bool = False  # Log SQL queries


@dataclass
class CronConfig:
    """Scheduled status update configuration."""
    # Shared secret expected as "Authorization: Bearer <token>".
    # When unset the cron endpoint is open.
    SECRET_TOKEN: Optional[str] = field(
        default_factory=lambda: os.environ.get("CRON_SECRET_TOKEN") or None
    )


@dataclass
class LifecycleConfig:
    """Rally lifecycle settings."""
    PREVIEW_LIMIT: int = 10  # Rallies shown by the status preview endpoint
    MAX_PREVIEW_LIMIT: int = 100


@dataclass
class Settings:
    """Main settings container."""
    server: ServerConfig = None
    database: DatabaseConfig = None
    cron: CronConfig = None
    lifecycle: LifecycleConfig = None

    # Application info
    APP_NAME: str = "RallyDesk"
    VERSION: str = "0.1.0"
    DEBUG: bool = True

    def __post_init__(self):
        self.server = self.server or ServerConfig()
        self.database = self.database or DatabaseConfig()
        self.cron = self.cron or CronConfig()
        self.lifecycle = self.lifecycle or LifecycleConfig()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
