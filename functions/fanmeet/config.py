"""
Configuration and settings for the FanMeet backend services.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings shared by the HTTP functions and cron scripts."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/functions/v1")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    request_timeout_seconds: float = Field(default=30)

    # Database (Supabase Postgres)
    database_url: Optional[str] = Field(default=None)

    # Supabase Auth (GoTrue)
    supabase_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "supabase_url", "SUPABASE_URL", "VITE_SUPABASE_URL"
        ),
    )
    supabase_anon_key: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "use_in_memory_backends", "FANMEET_USE_IN_MEMORY_BACKENDS"
        ),
    )

    # Razorpay X
    razorpay_base_url: str = Field(default="https://api.razorpay.com/v1")
    razorpay_key_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "razorpay_key_id", "RAZORPAYX_TEST_API_KEY", "RAZORPAY_KEY_ID"
        ),
    )
    razorpay_key_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "razorpay_key_secret", "RAZORPAYX_TEST_SECRET_KEY", "RAZORPAY_KEY_SECRET"
        ),
    )
    razorpay_account_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "razorpay_account_number", "RAZORPAY_X_ACCOUNT_NUMBER"
        ),
    )
    payout_narration: str = Field(default="FanMeet Earnings")

    # Agora Cloud Recording
    agora_base_url: str = Field(default="https://api.agora.io/v1")
    agora_app_id: Optional[str] = Field(default=None)
    agora_customer_id: Optional[str] = Field(default=None)
    agora_customer_secret: Optional[str] = Field(default=None)
    agora_recording_uid: str = Field(default="10000")
    agora_recording_mode: str = Field(default="composite")
    agora_recording_token: Optional[str] = Field(default=None)
    agora_resource_expire_hours: int = Field(default=24)
    agora_storage_vendor: int = Field(default=0)
    agora_storage_region: int = Field(default=0)
    agora_storage_bucket: Optional[str] = Field(default=None)
    agora_storage_access_key: Optional[str] = Field(default=None)
    agora_storage_secret_key: Optional[str] = Field(default=None)
    agora_webhook_url: Optional[str] = Field(default=None)

    # S3-compatible endpoint the recordings land in (for playback URLs)
    recording_storage_endpoint: Optional[str] = Field(default=None)
    recording_storage_region: Optional[str] = Field(default=None)

    # Marketplace policy
    platform_fee_percent: int = Field(default=10, ge=0, le=100)
    no_show_refund_percent: int = Field(default=100, ge=0, le=100)
    earnings_hold_hours: int = Field(default=24, ge=0)

    @property
    def database_configured(self) -> bool:
        return self.use_in_memory_backends or bool(self.database_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
