"""
Telephony provider factory.

Single source of truth for configuration: TelephonyConfig (pydantic-settings,
OS env + .env). Never read raw os.getenv("TWILIO_*") here.
"""

from __future__ import annotations

from functools import lru_cache

from numberops.shared.logging import get_logger, mask_secret
from numberops.telephony.config import ProviderType, TelephonyConfig
from numberops.telephony.config import get_telephony_config as _get_settings_telephony_config
from numberops.telephony.interface import TelephonyProvider
from numberops.telephony.mock_adapter import MockTelephonyAdapter
from numberops.telephony.twilio_adapter import TwilioAdapter

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Return cached TelephonyConfig loaded from OS env + .env."""
    return _get_settings_telephony_config()


def build_telephony_provider(cfg: TelephonyConfig) -> TelephonyProvider:
    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "twilio_account_sid": mask_secret(cfg.twilio_account_sid),
            "is_trial_account": cfg.is_trial_account,
            "webhook_base_url": cfg.webhook_base_url,
        },
    )

    if cfg.provider_type == ProviderType.TWILIO:
        return TwilioAdapter(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockTelephonyAdapter(is_sandbox=bool(cfg.is_trial_account))

    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_telephony_provider() -> TelephonyProvider:
    """Create and cache the telephony provider."""
    return build_telephony_provider(get_telephony_config())
