"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    auto_migrate: bool = False  # Apply pending Alembic migrations on startup

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "WiFi Access Gateway API"
    api_version: str = "0.1.0"
    api_description: str = "Token issuance and validation for captive-portal Wi-Fi access"

    # Admin Authentication - shared secret exchanged for a signed session
    admin_password: str = ""
    admin_jwt_secret: str = ""  # generate with: openssl rand -hex 32
    admin_session_hours: int = 24

    # Token issuance
    token_code_max_attempts: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "wifi-access-gateway"

    # Payment Provider - Stripe
    stripe_api_key: str = ""  # Stripe secret key (sk_test_... or sk_live_...)
    stripe_webhook_secret: str = ""  # Stripe webhook signing secret (whsec_...)
    stripe_publishable_key: str = ""  # Stripe publishable key (pk_test_... or pk_live_...)
    payment_currency: str = "USD"

    # Payment Provider - Paynow (web checkout and mobile money express checkout)
    paynow_integration_id: str = ""
    paynow_integration_key: str = ""
    paynow_return_url: str = ""  # Where the browser lands after web checkout
    paynow_result_url: str = ""  # Public URL of /api/payment/webhook
    paynow_auth_email: str = ""  # Required by Paynow for mobile money in test mode
    paynow_timeout_seconds: float = 20.0

    # SMS Provider
    sms_provider: str = "auto"  # auto, twilio, africastalking or console
    sms_timeout_seconds: float = 10.0
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    africastalking_username: str = ""
    africastalking_api_key: str = ""
    africastalking_sender_id: str = ""

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
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        # The admin dashboard is unusable without both secrets
        if not self.admin_password:
            errors.append("ADMIN_PASSWORD is required but empty or missing")
        if len(self.admin_jwt_secret) < 32:
            errors.append("ADMIN_JWT_SECRET must be at least 32 characters")

        if self.sms_provider not in ("auto", "twilio", "africastalking", "console"):
            errors.append(
                "SMS_PROVIDER must be auto, twilio, africastalking or console, "
                f"got: {self.sms_provider}"
            )

        if self.token_code_max_attempts < 1:
            errors.append("TOKEN_CODE_MAX_ATTEMPTS must be at least 1")

        # If we have errors, fail immediately with clear messaging
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
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def stripe_configured(self) -> bool:
        """Stripe needs both the secret key and the webhook secret."""
        return bool(self.stripe_api_key and self.stripe_webhook_secret)

    @property
    def paynow_configured(self) -> bool:
        """Paynow needs the integration credentials and a result URL."""
        return bool(
            self.paynow_integration_id and self.paynow_integration_key and self.paynow_result_url
        )


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
