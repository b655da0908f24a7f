from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Payment gateway (Razorpay-compatible orders API)
    gateway_base_url: str = Field("https://api.razorpay.com/v1", alias="GATEWAY_BASE_URL")
    gateway_key_id: str = Field("", alias="GATEWAY_KEY_ID")
    gateway_key_secret: str = Field("", alias="GATEWAY_KEY_SECRET")
    gateway_display_name: str = Field("Institute Fees", alias="GATEWAY_DISPLAY_NAME")
    gateway_currency: str = Field("INR", alias="GATEWAY_CURRENCY")
    gateway_timeout_seconds: float = Field(10.0, alias="GATEWAY_TIMEOUT_SECONDS")
    # Amounts are sent to the gateway in minor units (paise for INR)
    gateway_amount_multiplier: Decimal = Field(Decimal("100"), alias="GATEWAY_AMOUNT_MULTIPLIER")

    reconciliation_grace_days: int = Field(3, alias="RECONCILIATION_GRACE_DAYS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    sql_echo: Optional[bool] = Field(False, alias="SQL_ECHO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
