"""Console configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Intervals and backoff bounds are validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Console settings loaded from environment and .env.

    All settings have defaults; validate_intervals rejects values that
    would make the real-time reconnect loop or staleness checks misbehave.
    """

    # App
    app_name: str = "sla-console"
    app_version: str = "1.0.0"
    debug: bool = False

    # Admin API (remote store)
    api_base_url: str = "http://localhost:8000"
    # Optional second backend tried when the primary is unreachable or lacks the endpoint
    api_fallback_base_url: str | None = None
    api_timeout_seconds: float = 30.0
    session_id: SecretStr | None = None
    session_id_header: str = "X-Session-ID"
    correlation_id_header: str = "X-Correlation-ID"

    # Cache freshness
    cache_stale_seconds: int = 6 * 60 * 60  # 6 hours, admin lists
    tenant_refresh_hours: float = 6.0
    entity_refresh_hours: float = 6.0
    trend_refresh_hours: float = 6.0
    entity_details_stale_seconds: int = 0  # always refetch detail views

    # Mutations
    origin_retention: int = 256
    # Open product question: should role changes invalidate per-user permission views?
    cascade_role_to_user_permissions: bool = False

    # Real-time sync
    realtime_enabled: bool = True
    realtime_channel_prefix: str = "sla_changes"
    realtime_reconnect_interval_seconds: float = 1.0
    realtime_max_backoff_seconds: float = 30.0
    realtime_max_reconnect_attempts: int | None = 5
    realtime_echo_suppression: bool = True
    realtime_event_versioning: bool = True

    # Redis (real-time transport)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> "Settings":
        """Validate timing settings.

        - Reconnect interval must be positive (no reconnect storms).
        - Max backoff must not be shorter than the reconnect interval.
        - Stale times and retention must not be negative.
        """
        if self.realtime_reconnect_interval_seconds <= 0:
            raise ValueError("REALTIME_RECONNECT_INTERVAL_SECONDS must be greater than 0")
        if self.realtime_max_backoff_seconds < self.realtime_reconnect_interval_seconds:
            raise ValueError(
                "REALTIME_MAX_BACKOFF_SECONDS must be >= REALTIME_RECONNECT_INTERVAL_SECONDS"
            )
        if (
            self.realtime_max_reconnect_attempts is not None
            and self.realtime_max_reconnect_attempts < 1
        ):
            raise ValueError("REALTIME_MAX_RECONNECT_ATTEMPTS must be at least 1 when set")
        if self.cache_stale_seconds < 0 or self.entity_details_stale_seconds < 0:
            raise ValueError("Stale times must not be negative")
        if self.origin_retention < 0:
            raise ValueError("ORIGIN_RETENTION must not be negative")
        if self.api_timeout_seconds <= 0:
            raise ValueError("API_TIMEOUT_SECONDS must be greater than 0")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached console settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
