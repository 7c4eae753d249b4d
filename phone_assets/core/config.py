"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version
    VERSION: str = "0.3.0"

    # Database
    DATABASE_URL: str

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (verification links point here)
    FRONTEND_URL: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_PUBLIC: int = 30  # Token-authenticated verification endpoints

    # Outbound email (Resend). Empty API key = dry run, emails are logged only.
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@example.com"
    EMAIL_FROM_NAME: str = "Phone Asset Desk"
    EMAIL_SEND_TIMEOUT_SECONDS: float = 20.0

    # Verification campaigns
    VERIFICATION_EMAIL_CONCURRENCY: int = 10
    VERIFICATION_TIMEZONE: str = "Asia/Shanghai"
    VERIFICATION_MAX_DURATION_DAYS: int = 365

    # Mainland mobile numbers: 11 digits starting with 1[3-9]
    PHONE_NUMBER_PATTERN: str = r"^1[3-9][0-9]{9}$"

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def email_dry_run(self) -> bool:
        return not self.RESEND_API_KEY


settings = Settings()
