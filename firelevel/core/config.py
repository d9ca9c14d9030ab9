from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from pydantic import AnyUrl, Field
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"

STREAK_RULE_SETS = ("combined_v2", "intention_routines_v1")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    frontend_url: AnyUrl = Field(
        default=AnyUrl("http://localhost:3000"), alias="FRONTEND_URL"
    )
    default_timezone: str = Field(default="UTC", alias="DEFAULT_TIMEZONE")

    # Supabase
    supabase_url: AnyUrl = Field(alias="SUPABASE_URL")
    supabase_anon_key: str = Field(alias="SUPABASE_ANON_KEY")
    supabase_service_role_key: str = Field(alias="SUPABASE_SERVICE_ROLE_KEY")
    supabase_timeout_seconds: float = Field(
        default=30.0, alias="SUPABASE_TIMEOUT_SECONDS"
    )
    # One streak walk needs only a handful of requests; cap the pool so a burst
    # of walks queues instead of exhausting PostgREST connections.
    supabase_max_connections: int = Field(
        default=50, alias="SUPABASE_MAX_CONNECTIONS"
    )

    # Observability
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    # Streak engine
    streak_rule_set: str = Field(default="combined_v2", alias="STREAK_RULE_SET")
    streak_lookback_days: int = Field(default=365, alias="STREAK_LOOKBACK_DAYS")
    streak_compute_timeout_seconds: float = Field(
        default=20.0, alias="STREAK_COMPUTE_TIMEOUT_SECONDS"
    )
    streak_persist_max_attempts: int = Field(
        default=3, alias="STREAK_PERSIST_MAX_ATTEMPTS"
    )
    recalculate_per_minute_limit: int = Field(
        default=10, alias="RECALCULATE_PER_MINUTE_LIMIT"
    )
    auth_per_minute_limit: int = Field(default=240, alias="AUTH_PER_MINUTE_LIMIT")

    @model_validator(mode="after")
    def validate_runtime_constraints(self) -> "Settings":
        env = (self.app_env or "").strip().lower()
        is_prod = env in {"production", "prod"}

        frontend_origin = urlparse(str(self.frontend_url))
        frontend_host = (frontend_origin.hostname or "").lower()
        if is_prod and frontend_host in {"localhost", "127.0.0.1"}:
            raise ValueError(
                "Invalid FRONTEND_URL for production: localhost is not allowed. "
                "Set FRONTEND_URL to your public web domain."
            )

        supabase_origin = urlparse(str(self.supabase_url))
        supabase_host = (supabase_origin.hostname or "").lower()
        if is_prod and supabase_host in {"localhost", "127.0.0.1"}:
            raise ValueError(
                "Invalid SUPABASE_URL for production: localhost is not allowed."
            )

        if self.streak_rule_set not in STREAK_RULE_SETS:
            raise ValueError(
                f"STREAK_RULE_SET must be one of: {', '.join(STREAK_RULE_SETS)}"
            )
        if not (1 <= self.streak_lookback_days <= 365):
            raise ValueError("STREAK_LOOKBACK_DAYS must be between 1 and 365")
        if self.streak_compute_timeout_seconds <= 0:
            raise ValueError("STREAK_COMPUTE_TIMEOUT_SECONDS must be positive")
        if not (1 <= self.streak_persist_max_attempts <= 10):
            raise ValueError("STREAK_PERSIST_MAX_ATTEMPTS must be 1..10")
        if self.recalculate_per_minute_limit < 0:
            raise ValueError("RECALCULATE_PER_MINUTE_LIMIT must be >= 0")
        if self.auth_per_minute_limit < 0:
            raise ValueError("AUTH_PER_MINUTE_LIMIT must be >= 0")
        if not (1 <= self.supabase_max_connections <= 500):
            raise ValueError("SUPABASE_MAX_CONNECTIONS must be 1..500")

        return self


settings = Settings()  # type: ignore[call-arg]  # singleton import via env settings
