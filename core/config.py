# ==================================================================================
# core/config.py : BoxFlow configuration (pydantic-settings v2, .env aware)
# ==================================================================================
import logging
import sys
from typing import List

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # ------------------------
    # DATABASE CONFIG
    # ------------------------
    DATABASE_URL: str = "sqlite:///./boxflow.db"

    # ------------------------
    # SECURITY CONFIG
    # ------------------------
    # Tokens are issued by the identity provider; we only verify them.
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # ------------------------
    # FRONTEND / CORS
    # ------------------------
    FRONTEND_URL: str = "http://localhost:8081"
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:8081",
        "http://127.0.0.1:8081",
    ]

    # ------------------------
    # BILLING CONFIG
    # ------------------------
    CURRENCY: str = "BRL"
    DEFAULT_ENROLLMENT_FEE_CENTS: int = 9500
    PAYMENT_DUE_DAYS: int = 3
    CHECKOUT_SESSION_TTL_MINUTES: int = 30
    SETTLEMENT_FEE_BPS: int = 500  # 5% flat
    CHECKOUT_BASE_URL: str = "https://checkout.boxflow.test/sessions"
    RECEIPT_BASE_URL: str = "https://checkout.boxflow.test/receipts"

    # ------------------------
    # STRIPE (webhook signature only)
    # ------------------------
    STRIPE_WEBHOOK_SECRET: str | None = None

    # ------------------------
    # ENGINE POLICY
    # ------------------------
    WAITLIST_AUTO_PROMOTE: bool = True
    BOOKING_REQUIRES_PAID_BALANCE: bool = False

    # ------------------------
    # ENVIRONMENT SETTINGS
    # ------------------------
    ENVIRONMENT: str = "development"  # 'development' | 'production'
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def IS_PRODUCTION(self) -> bool:
        """Convenience helper to check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ------------------------
# Global Settings Loader
# ------------------------
try:
    settings = Settings()
except ValidationError as e:
    logger.error("❌ Environment configuration error: missing or invalid settings!\n%s", e)
    sys.exit(1)
