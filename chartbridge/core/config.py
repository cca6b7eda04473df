"""
Configuration Management

Centralized configuration using Pydantic Settings. Every field can be set
through a CHARTBRIDGE_-prefixed environment variable or a .env file.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHARTBRIDGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ChartBridge"
    app_version: str = "1.0.0"
    debug: bool = False

    # Query protocol
    resource_marker: str = Field(default="tsdv", min_length=1)

    # Dispatch
    max_workers: int = Field(default=4, ge=1)

    # Engine initialization
    config_path: Optional[str] = None
    storage_location: str = "./data/chartbridge.db"
    reset_storage: bool = False

    # Performance recorder
    log_dir: str = "./logs"
    log_prefix: str = "chartbridge"
    preferences_path: Optional[str] = None


# Global settings instance
settings = Settings()
