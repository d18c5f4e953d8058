from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the identity provider)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # App Settings
    APP_NAME: str = "Merch Marketplace Earnings"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
    ]

    # Commission
    DEFAULT_BRAND_RATE: Decimal = Decimal("0.50")  # Platform default brand share
    CARVE_OUT_CAP_ENABLED: bool = True  # Cap affiliate + referral at brand earnings
    DEFAULT_AFFILIATE_RATE: Decimal = Decimal("0.10")  # Rate given to new affiliates

    # Platform referrals
    MAX_ACTIVE_REFERRAL_LINKS: int = 5

    # Payouts
    MIN_PAYOUT_AMOUNT: Decimal = Decimal("1.00")
    PAYOUT_CURRENCY: str = "INR"
    PAYOUT_LOCK_TIMEOUT_SECONDS: int = 300  # Stale payout-in-flight flags expire after this
    PAYMENT_RAIL_TIMEOUT_SECONDS: float = 30.0

    # Razorpay (Route transfers to linked accounts)
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""

    # Order source webhook
    ORDER_WEBHOOK_SECRET: Optional[str] = None

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    RECONCILE_INTERVAL_MINUTES: int = 60
    PAYOUT_LOCK_SWEEP_MINUTES: int = 5

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
