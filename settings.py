# settings.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal



class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # App
    # -----------------------
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(...)
    DB_POOL_MIN: int = 1
    DB_POOL_MAX: int = 10

    # -----------------------
    # JWT
    # -----------------------
    JWT_SECRET: str = Field(default="dev-secret-change-me", min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)

    # -----------------------
    # Payout provider (MyCoolPay)
    # -----------------------
    PAYOUT_PROVIDER: Literal["MYCOOLPAY", "MOCK"] = "MYCOOLPAY"
    MYCOOLPAY_MODE: Literal["test", "live"] = "test"
    MYCOOLPAY_BASE_URL: str = "https://my-coolpay.com/api"
    MYCOOLPAY_PUBLIC_KEY: str = ""
    MYCOOLPAY_PRIVATE_KEY: str = ""

    # HTTP timeouts
    MYCOOLPAY_HTTP_TIMEOUT_S: float = 20.0

    # -----------------------
    # Marketplace money rules (XAF)
    # -----------------------
    CURRENCY: str = "XAF"
    MIN_WITHDRAWAL_AMOUNT: int = Field(default=1000, ge=1)
    MAX_WITHDRAWAL_AMOUNT: int = Field(default=1_000_000, ge=1)
    WITHDRAWAL_COOLDOWN_MINUTES: int = Field(default=30, ge=0)
    DEFAULT_DELIVERY_FEE: int = Field(default=2000, ge=0)
    COMMISSION_RATE: float = Field(default=0.0, ge=0.0, lt=1.0)

    # Delivery jobs still OPEN after this long are reported as stale
    STALE_JOB_MINUTES: int = 30



settings = Settings()


def validate_env_settings() -> None:
    """
    Fail fast on configuration that would only break at the first payout.
    """
    if settings.MIN_WITHDRAWAL_AMOUNT > settings.MAX_WITHDRAWAL_AMOUNT:
        raise RuntimeError("MIN_WITHDRAWAL_AMOUNT must not exceed MAX_WITHDRAWAL_AMOUNT")

    if settings.PAYOUT_PROVIDER != "MYCOOLPAY" or settings.MYCOOLPAY_MODE != "live":
        return

    missing = [
        name
        for name in ("MYCOOLPAY_PUBLIC_KEY", "MYCOOLPAY_PRIVATE_KEY")
        if not (getattr(settings, name) or "").strip()
    ]
    if missing:
        raise RuntimeError(
            "MyCoolPay startup validation failed. mode=live "
            "Missing required env vars: " + ", ".join(sorted(missing))
        )
