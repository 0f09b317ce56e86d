"""
Telephony provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony provider types."""

    TWILIO = "twilio"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.TWILIO)

    # Provider credentials
    twilio_account_sid: str = Field(default="")
    twilio_auth_token: str = Field(default="")

    # None -> ask the provider for the account type (Trial/Full)
    is_trial_account: bool | None = Field(default=None)

    # Webhook base URL configured as VoiceUrl/StatusCallback on purchased numbers
    webhook_base_url: str = Field(default="")

    api_base_url: str = Field(default="https://api.twilio.com/2010-04-01")
    pricing_base_url: str = Field(default="https://pricing.twilio.com/v1")

    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    @property
    def has_credentials(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    def get_webhook_url(self, path: str) -> str | None:
        """Absolute webhook URL, or None when no public base URL is configured."""
        base = self.webhook_base_url.rstrip("/")
        if not base or "localhost" in base:
            return None
        return f"{base}{path}"


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
