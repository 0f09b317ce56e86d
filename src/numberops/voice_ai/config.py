"""
Voice-AI provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VoiceAIProviderType(str, Enum):
    """Supported voice-AI provider types."""

    ELEVENLABS = "elevenlabs"
    MOCK = "mock"


class VoiceAIConfig(BaseSettings):
    """Voice-AI provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="VOICE_AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider_type: VoiceAIProviderType = Field(default=VoiceAIProviderType.ELEVENLABS)

    api_key: str = Field(default="")
    api_base_url: str = Field(default="https://api.elevenlabs.io")

    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)


def get_voice_ai_config() -> VoiceAIConfig:
    return VoiceAIConfig()
