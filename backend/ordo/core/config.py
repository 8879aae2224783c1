"""Application configuration via pydantic settings."""

from functools import lru_cache
from pathlib import Path

from typing import Any, Literal

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Ordo Booking API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    scheduling_timezone: str = Field("UTC", alias="SCHEDULING_TIMEZONE")
    reschedule_notice_hours: int = Field(12, alias="RESCHEDULE_NOTICE_HOURS")
    default_currency: str = Field("ZAR", alias="DEFAULT_CURRENCY")
    deposit_percentage: float = Field(30.0, alias="DEPOSIT_PERCENTAGE")
    platform_fee_percentage: float = Field(5.0, alias="PLATFORM_FEE_PERCENTAGE")

    payments_provider: Literal["stripe", "memory"] = Field(
        "memory", alias="PAYMENTS_PROVIDER"
    )
    stripe_secret_key: str | None = Field(default=None, alias="STRIPE_SECRET_KEY")
    payments_webhook_secret: str | None = Field(
        default=None, alias="PAYMENTS_WEBHOOK_SECRET"
    )
    payments_webhook_signature_header: str = Field(
        "X-Webhook-Signature", alias="PAYMENTS_WEBHOOK_SIGNATURE_HEADER"
    )
    payments_allow_unsigned_webhooks: bool = Field(
        default=False, alias="PAYMENTS_ALLOW_UNSIGNED_WEBHOOKS"
    )
    payment_gateway_timeout: float = Field(10.0, alias="PAYMENT_GATEWAY_TIMEOUT")

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")

    rate_limit_booking_create: str = Field(
        "10/minute", alias="RATE_LIMIT_BOOKING_CREATE"
    )
    rate_limit_webhook: str = Field("300/minute", alias="RATE_LIMIT_WEBHOOK")

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
    )

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
