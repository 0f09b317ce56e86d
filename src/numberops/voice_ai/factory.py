"""
Voice-AI provider factory.
"""

from __future__ import annotations

from functools import lru_cache

from numberops.shared.logging import get_logger, mask_secret
from numberops.telephony.config import TelephonyConfig
from numberops.telephony.factory import get_telephony_config
from numberops.voice_ai.config import VoiceAIConfig, VoiceAIProviderType
from numberops.voice_ai.config import get_voice_ai_config as _get_settings_voice_ai_config
from numberops.voice_ai.elevenlabs_adapter import ElevenLabsAdapter
from numberops.voice_ai.interface import VoiceAIProvider
from numberops.voice_ai.mock_adapter import MockVoiceAIAdapter

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_voice_ai_config() -> VoiceAIConfig:
    return _get_settings_voice_ai_config()


def build_voice_ai_provider(cfg: VoiceAIConfig, telephony_cfg: TelephonyConfig) -> VoiceAIProvider:
    logger.info(
        "Voice-AI config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "api_key": mask_secret(cfg.api_key),
            "api_base_url": cfg.api_base_url,
        },
    )

    if cfg.provider_type == VoiceAIProviderType.ELEVENLABS:
        return ElevenLabsAdapter(
            cfg,
            telephony_account_sid=telephony_cfg.twilio_account_sid,
            telephony_auth_token=telephony_cfg.twilio_auth_token,
        )

    if cfg.provider_type == VoiceAIProviderType.MOCK:
        return MockVoiceAIAdapter()

    raise ValueError(f"Unsupported voice-AI provider_type: {cfg.provider_type}")


@lru_cache(maxsize=1)
def get_voice_ai_provider() -> VoiceAIProvider:
    """Create and cache the voice-AI provider."""
    return build_voice_ai_provider(get_voice_ai_config(), get_telephony_config())
