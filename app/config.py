"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config is validated at startup.
"""

import sys
from datetime import timedelta

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "ToolGate Access API"
    api_version: str = "0.1.0"
    api_description: str = "Unlock-token access gate for the AI chat and shortlink relays"

    # Identity - Firebase ID tokens
    firebase_project_id: str = ""
    identity_cache_max_size: int = 10000

    # Token issuance (ad/survey postback)
    token_issuer_api_key: str = ""

    # Access policy
    access_window_hours: int = 24
    unlock_token_ttl_minutes: int = 5

    # Upstream relays
    perplexity_api_key: str = ""
    perplexity_api_url: str = "https://api.perplexity.ai/chat/completions"
    perplexity_model: str = "sonar"
    shortlink_api_key: str = ""
    shortlink_api_url: str = "https://vplink.in/api"
    upstream_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "toolgate-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.access_window_hours <= 0:
            errors.append(f"ACCESS_WINDOW_HOURS must be positive, got: {self.access_window_hours}")

        if self.unlock_token_ttl_minutes <= 0:
            errors.append(
                f"UNLOCK_TOKEN_TTL_MINUTES must be positive, got: {self.unlock_token_ttl_minutes}"
            )

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def access_window(self) -> timedelta:
        """Duration granted by one successful redemption."""
        return timedelta(hours=self.access_window_hours)

    @property
    def unlock_token_ttl(self) -> timedelta:
        """Validity window of a freshly issued unlock token."""
        return timedelta(minutes=self.unlock_token_ttl_minutes)


# Global settings instance - validates at import time
settings = Settings()
