"""
Application Settings for Billflow

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The webhook secret is shared with the payment gateway and is the only
    credential the reconciliation endpoint trusts. Gateway API keys are
    optional: without them the Razorpay client runs in mock mode.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Authentication (HS256 tokens issued by the auth service)
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    auth_cookie_name: str = "auth-token"

    # Razorpay Configuration
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_webhook_secret: Optional[str] = None

    # Billing Configuration
    default_currency: str = "INR"
    simulated_gateway_delay_seconds: float = 1.0
    stale_transaction_minutes: int = 30

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: str = "sqlite+aiosqlite:///./billflow.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Production deployments must carry the auth and webhook secrets."""
        if self.is_production:
            missing = []
            if not self.jwt_secret:
                missing.append("JWT_SECRET")
            if not self.razorpay_webhook_secret:
                missing.append("RAZORPAY_WEBHOOK_SECRET")
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} required when ENVIRONMENT=production"
                )

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def gateway_mock_mode(self) -> bool:
        """True when no Razorpay API keys are configured."""
        return not self.razorpay_key_id or not self.razorpay_key_secret


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
