"""Application configuration via pydantic-settings.

Values come from the environment or a ``.env`` file. Every field is
validated when the settings are first loaded, so a bad interval or an
unparsable origin list stops the service at startup instead of at the
first verification tick.

Usage:
    from barter_exchange.config import get_settings
    settings = get_settings()
    settings.min_confirmations  # -> 6
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the exchange core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Service ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_log_json: bool | None = Field(
        default=None,
        description="Force JSON logs on or off; by default only development logs to the console",
    )
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_allowed_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # --- Database ---
    database_url: str = (
        "postgresql+asyncpg://exchange:exchange_dev"
        "@localhost:5432/barter_exchange"
    )
    db_pool_size: int = Field(default=10, ge=1)
    db_max_overflow: int = Field(default=20, ge=0)
    db_pool_timeout: int = Field(default=30, ge=1)
    db_echo_sql: bool = False

    # --- Chain node and wallet RPC ---
    chain_node_url: str = "https://localhost:8555"
    chain_wallet_url: str = "https://localhost:9256"
    chain_timeout_seconds: float = Field(default=10.0, gt=0)
    chain_cert_path: str = ""
    chain_key_path: str = ""
    chain_ca_path: str = ""
    chain_allow_insecure: bool = False

    # --- Verification loop ---
    verification_enabled: bool = True
    verification_interval_seconds: float = Field(default=30.0, gt=0)
    stale_cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    stale_pending_hours: int = Field(default=24, ge=1)
    min_confirmations: int = Field(default=6, ge=1)

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        # Accepts a JSON list or CORS_ALLOWED_ORIGINS=https://a.example,https://b.example
        if not isinstance(value, str):
            return value
        if value.lstrip().startswith("["):
            return json.loads(value)
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def json_logs(self) -> bool:
        if self.app_log_json is not None:
            return self.app_log_json
        return not self.is_development


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
