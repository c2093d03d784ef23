from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    app_name: str = "jmap-engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    session_url: str = "https://api.fastmail.com/jmap/session"
    api_token: str | None = None  # Bearer token; loaded from environment
    request_timeout: float = 30.0  # seconds
    user_agent: str = "jmap-engine/0.1.0"

    # Batching
    max_calls_fallback: int = 16  # RFC 8620 minimum when the server advertises nothing
    send_created_ids: bool = True  # forward createdIds between chunks

    # Incremental sync
    default_max_changes: int | None = 256
    max_sync_iterations: int = 1000  # hard stop for a runaway hasMoreChanges loop

    # Safety
    require_destructive_confirmation: bool = False

    # OpenTelemetry Distributed Tracing
    telemetry_enabled: bool = False
    telemetry_exporter: str = "none"  # Options: "console", "otlp", "none"
    telemetry_otlp_endpoint: str | None = None  # e.g., "http://localhost:4317"
    telemetry_environment: str = "development"

    @model_validator(mode="after")
    def validate_engine_config(self) -> "Settings":
        """Validate server URL, limits and telemetry exporter"""
        if not self.session_url.startswith(("https://", "http://")):
            raise ValueError(
                f"Invalid session_url '{self.session_url}'. Must be an absolute http(s) URL."
            )
        if self.max_calls_fallback < 1:
            raise ValueError("max_calls_fallback must be at least 1")
        if self.default_max_changes is not None and self.default_max_changes < 1:
            raise ValueError("default_max_changes must be positive or unset")
        if self.max_sync_iterations < 1:
            raise ValueError("max_sync_iterations must be at least 1")

        if self.telemetry_exporter not in ("console", "otlp", "none"):
            raise ValueError(
                f"Invalid telemetry_exporter '{self.telemetry_exporter}'. "
                f"Must be one of: 'console', 'otlp', 'none'"
            )
        if self.telemetry_exporter == "otlp" and not self.telemetry_otlp_endpoint:
            raise ValueError(
                "telemetry_otlp_endpoint is required when telemetry_exporter is 'otlp'. "
                "Set JMAP_TELEMETRY_OTLP_ENDPOINT environment variable or update .env file."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="JMAP_", env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
