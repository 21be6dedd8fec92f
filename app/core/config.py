# app/core/config.py
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string, or sqlite:// for local runs)
      - JWT_SECRET (secret used to verify bearer tokens from the identity provider)

    Optional:
      - PAYMENT_GATEWAY_URL (when unset, card charges go to the stub gateway)
      - pricing knobs below (service fee, delivery fee band, surcharges)
    """

    PROJECT_NAME: str = "Marketplace Ordering API"
    API_V1_STR: str = "/api/v1"

    DATABASE_URL: str

    # JWT verification (backend-side)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Cart pricing
    SERVICE_FEE_RATE: Decimal = Decimal("0.02")
    CART_TTL_HOURS: int = 24
    CART_REAPER_INTERVAL_SECONDS: int = 300  # 0 disables the background sweep

    # Delivery pricing
    DELIVERY_FEE_MIN: Decimal = Decimal("0.00")
    DELIVERY_FEE_MAX: Decimal = Decimal("25.00")
    DELIVERY_SURCHARGE_THRESHOLD_KM: float = 5.0
    DELIVERY_PER_KM_SURCHARGE: Decimal = Decimal("0.50")
    DELIVERY_MINUTES_PER_KM: float = 3.0

    # Payment gateway
    PAYMENT_GATEWAY_URL: str | None = None
    PAYMENT_GATEWAY_API_KEY: str | None = None
    PAYMENT_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
