"""Application settings loaded from environment variables.

Configuration file discovery (in priority order):
1. OS environment variables (always highest priority)
2. PAYEEBATCH_ENV_FILE environment variable (path to .env file)
3. config/.env.dev - local development
4. config/.env - production/Docker

Uses pydantic-settings for automatic type coercion and validation.
"""

from __future__ import annotations

import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path:
    """Find the project root directory."""
    current = Path(__file__).resolve().parent

    for parent in [current, *current.parents]:
        if (parent / "config").is_dir():
            return parent
        if (parent / ".git").is_dir():
            return parent

    return Path(__file__).resolve().parents[2]


def get_config_dir() -> Path:
    return _find_project_root() / "config"


def _resolve_env_file_path() -> Path | None:
    """Resolve the .env file path.

    Priority:
    1. PAYEEBATCH_ENV_FILE env var (full path)
    2. config/.env.dev (local development)
    3. config/.env (production)
    """
    env_file_path = os.environ.get("PAYEEBATCH_ENV_FILE")
    if env_file_path:
        path = Path(env_file_path)
        if not path.is_absolute():
            path = _find_project_root() / path
        if path.exists():
            return path

    config_dir = get_config_dir()

    dev_env = config_dir / ".env.dev"
    if dev_env.exists():
        return dev_env

    prod_env = config_dir / ".env"
    if prod_env.exists():
        return prod_env

    return None


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Values are loaded from:
    1. OS environment variables (highest priority)
    2. .env file (config/.env.dev or config/.env)
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_resolve_env_file_path(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "payeebatch"
    debug: bool = False

    # Classification provider (OPENAI_ prefix)
    openai_api_key: SecretStr = SecretStr("")  # Empty = local fallback only
    openai_model: str = "gpt-4o-mini"
    openai_completion_window: str = "24h"
    openai_timeout: float = 60.0

    # Database (POSTGRES_ prefix, or a full DSN override)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: SecretStr = SecretStr("")
    postgres_db: str = "payeebatch"
    database_dsn: Optional[str] = None

    # Storage
    blob_store_path: Path = Path("data/blobs")
    blob_base_url: str = "file://"
    local_cache_path: Path = Path("data/cache")
    inline_payload_max_rows: int = 5000

    # Polling and job health
    poll_interval_seconds: float = 30.0
    queue_timeout_minutes: int = 240
    stall_timeout_hours: float = 6.0
    stall_progress_ratio: float = 0.10
    auto_cancel_enabled: bool = True
    auto_cancel_after_hours: float = 24.0
    terminal_job_retention_hours: float = 48.0
    maintenance_interval_seconds: float = 300.0

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    cancel_max_retries: int = 2

    # Row expansion (0 = pick by input size)
    expansion_chunk_size: int = 0

    # Custom exclusion keywords, comma-separated
    exclusion_keywords_extra: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    @field_validator("stall_progress_ratio")
    @classmethod
    def _validate_ratio(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            msg = "stall_progress_ratio must be in (0, 1]"
            raise ValueError(msg)
        return v

    @field_validator("retry_max_attempts")
    @classmethod
    def _validate_attempts(cls, v: int) -> int:
        if v < 1:
            msg = "retry_max_attempts must be at least 1"
            raise ValueError(msg)
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """DSN override if set, otherwise built from the postgres settings."""
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql+asyncpg://{self.postgres_user}:"
            f"{self.postgres_password.get_secret_value()}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def provider_enabled(self) -> bool:
        return bool(self.openai_api_key.get_secret_value())

    @property
    def queue_timeout(self) -> timedelta:
        return timedelta(minutes=self.queue_timeout_minutes)

    @property
    def stall_timeout(self) -> timedelta:
        return timedelta(hours=self.stall_timeout_hours)

    @property
    def auto_cancel_after(self) -> timedelta | None:
        if not self.auto_cancel_enabled:
            return None
        return timedelta(hours=self.auto_cancel_after_hours)

    @property
    def terminal_job_retention(self) -> timedelta:
        return timedelta(hours=self.terminal_job_retention_hours)

    @property
    def custom_exclusion_keywords(self) -> list[str]:
        return [k.strip() for k in self.exclusion_keywords_extra.split(",") if k.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for tests)."""
    get_settings.cache_clear()
