"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://storefront:storefront_dev_password@db:5432/storefront"
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=10, ge=0)

    # Authentication (admin fulfillment endpoints)
    admin_api_key: str = "dev-admin-key-change-in-production"

    # Public URLs
    frontend_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:8000"

    # Payment gateway (Prodamus)
    prodamus_payment_form_url: str | None = None
    prodamus_secret_key: str | None = None

    # Notifications (Telegram)
    telegram_bot_token: str | None = None
    telegram_admin_chat_id: str | None = None
    telegram_timeout_seconds: float = Field(default=10.0, gt=0)

    # Carts
    cart_expires_days: int = Field(default=30, ge=1)

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
