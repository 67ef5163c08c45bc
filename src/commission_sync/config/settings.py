"""Configuration settings for the commission sync engine."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables (and an optional .env)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Entity store
    store_api_url: str = Field(
        default="http://localhost:8000", validation_alias="STORE_API_URL"
    )
    store_api_token: SecretStr | None = Field(default=None, validation_alias="STORE_API_TOKEN")
    store_timeout: float = Field(default=30.0, validation_alias="STORE_TIMEOUT")
    store_max_retries: int = Field(default=3, validation_alias="STORE_MAX_RETRIES")

    # Reconciliation
    sync_batch_size: int = Field(default=50, ge=1, validation_alias="SYNC_BATCH_SIZE")
    stream_item_delay: float = Field(default=0.06, ge=0, validation_alias="STREAM_ITEM_DELAY")
    stream_batch_delay: float = Field(default=0.3, ge=0, validation_alias="STREAM_BATCH_DELAY")
    balance_tolerance: Decimal = Field(
        default=Decimal("0.01"), validation_alias="BALANCE_TOLERANCE"
    )
    default_commission_percent: Decimal = Field(
        default=Decimal("5"), validation_alias="DEFAULT_COMMISSION_PERCENT"
    )

    # Notifications
    notification_default_recipient: str | None = Field(
        default=None, validation_alias="NOTIFICATION_DEFAULT_RECIPIENT"
    )

    # HTTP surface
    internal_token: SecretStr | None = Field(default=None, validation_alias="INTERNAL_TOKEN")
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8080, validation_alias="API_PORT")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
