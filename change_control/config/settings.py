# change_control/config/settings.py

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_name: str = "change-control"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False
    version: str = "0.1.0"

    # --- Storage ---
    storage_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./change_control.db"
    storage_timeout_seconds: float = Field(5.0, gt=0)

    # --- Messaging (empty disables notifications) ---
    rabbitmq_url: str = ""

    # --- Audit ---
    audit_export_max_records: int = Field(10000, ge=1)

    # --- Pagination ---
    default_page_size: int = Field(20, ge=1, le=100)
    audit_page_size: int = Field(50, ge=1, le=200)

    # --- Credentials ---
    credential_hash_iterations: int = Field(480000, ge=10000)

    # --- Observability ---
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()


# Singleton for direct import (e.g. in infrastructure clients)
settings = get_settings()
