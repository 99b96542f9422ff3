"""Configuration settings using Pydantic BaseSettings."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVER_PORT = 11180
DEFAULT_SITE_PORT = 8000
URL_SCHEME = "yabu"


class Settings(BaseSettings):
    """Application settings loaded from ``YABU_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="YABU_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Task server
    server_host: str = Field(default="0.0.0.0", description="Address yabuserver listens on")
    server_port: int = Field(default=DEFAULT_SERVER_PORT, ge=0, le=65535, description="Port yabuserver listens on")
    server_url: str = Field(
        default=f"{URL_SCHEME}://127.0.0.1:{DEFAULT_SERVER_PORT}",
        description="Server the CLI and web site connect to",
    )

    # Storage
    storage_backend: Literal["sqlite", "memory"] = Field(default="sqlite", description="Task storage backend")
    database_path: Path = Field(default=Path("yabuserver.db"), description="SQLite database file")

    # Web site
    site_host: str = Field(default="0.0.0.0", description="Address yabusite listens on")
    site_port: int = Field(default=DEFAULT_SITE_PORT, ge=0, le=65535, description="Port yabusite listens on")
    connection_pool_size: int = Field(default=0, ge=0, description="Server connections kept by yabusite (0 = CPU count)")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Log file path")


# Global settings instance
settings = Settings()
