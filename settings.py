# settings.py
from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(default="postgresql://localhost:5432/finance")
    DB_POOL_MAX_CONN: int = 10
    DB_STATEMENT_TIMEOUT_MS: int = 5000
    # FOR UPDATE without NOWAIT waits at most this long
    DB_LOCK_TIMEOUT_MS: int = 2000

    # -----------------------
    # JWT
    # -----------------------
    JWT_SECRET: str = Field(default="dev-secret-change-me", min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = 60
    ADMIN_ROLES: str = "Payment Admin,Payment Editor,Payment BA Admin,Engagement Payment Approver"

    # -----------------------
    # Payment provider (Mode Switch)
    # -----------------------
    PROVIDER_MODE: Literal["sandbox", "real"] = "sandbox"
    PROVIDER_API_BASE_URL: str = "https://api.trolley.com"
    PROVIDER_ACCESS_KEY: str = ""
    PROVIDER_SECRET_KEY: str = ""
    PROVIDER_HTTP_TIMEOUT_S: float = 20.0
    # logs every provider request/response at DEBUG, credentials redacted
    PROVIDER_HTTP_DEBUG: bool = False

    # shared secret for x-provider-signature
    PROVIDER_WEBHOOK_SECRET: str = ""

    # smallest sum a single withdrawal may request
    PROVIDER_MIN_PAYMENT_AMOUNT: Decimal = Decimal("0")
    ACCEPT_CUSTOM_PAYMENTS_MEMO: bool = False

    # payout fee withheld from withdrawals paid out through FEE_PAYOUT_METHOD; 0 disables it
    PROVIDER_PAYPAL_FEE_PERCENT: Decimal = Decimal("0")
    PROVIDER_PAYPAL_FEE_MAX_AMOUNT: Optional[Decimal] = None
    PROVIDER_FEE_PAYOUT_METHOD: str = "paypal"

    # -----------------------
    # Payment state machine
    # -----------------------
    # a release must be pending this long before an admin may push its payments back to OWED
    RELEASE_REVERT_MIN_HOURS: int = 12

    # -----------------------
    # Logging
    # -----------------------
    LOG_LEVEL: str = "INFO"


settings = Settings()
