"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "sketchbrains"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:5173"
    frontend_url: str | None = None

    # Auth (access tokens are issued by the managed auth provider)
    jwt_secret_key: str = "change-me-in-production"
    service_token: str | None = None  # cron / internal callers

    # Database
    database_url: str = "sqlite:///./sketchbrains.db"

    # Razorpay
    razorpay_key_id: str | None = None
    razorpay_key_secret: str | None = None
    razorpay_webhook_secret: str | None = None
    currency: str = "INR"

    # SendGrid
    sendgrid_api_key: str | None = None
    sendgrid_from_email: str = "no-reply@sketchbrains.in"
    sendgrid_from_name: str = "Sketch Brains"

    # Twilio
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_number: str | None = None

    # Rate limiting (unset means on in production only)
    rate_limit_enabled: bool | None = None
    rate_limit_storage_uri: str = "memory://"

    # HTTP Client
    request_timeout_seconds: int = 30


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Use the JWT secret of the auth project.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    if not settings.razorpay_webhook_secret:
        print(
            "\n⚠️  RAZORPAY_WEBHOOK_SECRET is not set; payment webhooks will be refused.\n",
            file=sys.stderr,
        )
