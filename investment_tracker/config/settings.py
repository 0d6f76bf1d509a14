"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./investment_tracker.db"


class TrackerSettings(BaseSettings):
    """Configuration options for the investment tracker service."""

    app_name: str = Field(default="Investment Tracker")
    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    database_url: str = Field(
        default=DEFAULT_DATABASE_URL,
        description="SQLAlchemy async database URL used for signed-in users.",
    )
    local_store_path: Path = Field(
        default=Path("./data/transactions.json"),
        description="JSON file holding transactions of anonymous users.",
    )

    alphavantage_api_key: str | None = Field(default=None)
    alphavantage_requests_per_minute: int = Field(default=5, ge=1)
    quote_cache_seconds: float = Field(default=60.0, ge=0.0)
    historical_lookback_days: int = Field(
        default=10,
        ge=1,
        description="Calendar days searched, the requested day included, when looking up a historical close.",
    )

    internal_auth_token: str | None = Field(
        default=None,
        description="Optional shared secret required from callers in X-Internal-Token.",
    )

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="investment-tracker")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"alphavantage_api_key", "internal_auth_token"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> TrackerSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return TrackerSettings(**overrides)
    return TrackerSettings()


__all__ = ["TrackerSettings", "DEFAULT_DATABASE_URL", "get_settings"]
