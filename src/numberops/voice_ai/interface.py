"""
Voice-AI provider interface definition.

The voice-AI provider binds a purchased telephony number to a conversational
agent. Registration returns an id that the ownership record keeps.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class VoiceAIRegistration:
    """Result of registering a number with the voice-AI provider."""

    registration_id: str
    number: str
    raw_response: dict[str, Any] = field(default_factory=dict)


class VoiceAIProvider(ABC):
    """Abstract interface for voice-AI providers."""

    @abstractmethod
    async def register_phone_number(
        self,
        number: str,
        provider_sid: str,
        label: str | None = None,
    ) -> VoiceAIRegistration:
        """Register a telephony number; raises RegistrationFailedError on rejection."""
        ...

    @abstractmethod
    async def deregister_phone_number(self, registration_id: str) -> None:
        """Remove a registration; raises DeregistrationFailedError on rejection."""
        ...

    async def aclose(self) -> None:
        return None
