"""Key Manager configuration management.

Configuration sources (in priority order):
1. Environment variables (KEY_MANAGER_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # Any async SQLAlchemy URL, e.g. postgresql+asyncpg://
    url: str = "sqlite+aiosqlite:///./key_manager.db"
    echo: bool = False


class KeyConfig(BaseModel):
    """API key lifecycle configuration."""

    # Random bytes per generated key / client secret (base64 encoded)
    entropy_bytes: int = Field(default=32, ge=16)

    # Total attempts before generation is declared exhausted
    max_generation_attempts: int = Field(default=3, ge=1)

    # Expiry applied when the caller does not supply one
    default_expiry_days: int = Field(default=365, ge=1)

    # Listing
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # Characters of a raw key kept in audit events
    masked_prefix_length: int = Field(default=8, ge=0)

    # When true, status=active listing also matches keys with no expiry date.
    # Off by default: the active predicate is `is_active AND expiry_date > now`.
    active_filter_includes_no_expiry: bool = False

    # Actor recorded in created_by / updated_by / deleted_by
    service_actor: str = "key-manager-service"


class AuditConfig(BaseModel):
    """Audit event configuration."""

    enabled: bool = True


class Settings(BaseSettings):
    """Key Manager application settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEY_MANAGER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # development exposes internal error details in responses
    environment: Literal["development", "production"] = "production"

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    keys: KeyConfig = Field(default_factory=KeyConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats the YAML file, which is passed in as init kwargs.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def expose_error_details(self) -> bool:
        return self.environment == "development"


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. KEY_MANAGER_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/key-manager/config.yaml
    """
    config_paths = [
        os.environ.get("KEY_MANAGER_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/key-manager/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Configuration is loaded from:
    1. YAML config file (if exists)
    2. Environment variables (override)
    3. Defaults
    """
    file_config = _load_config_file()
    return Settings(**file_config)
