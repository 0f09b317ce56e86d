"""
Mock voice-AI provider for development and testing.
"""

from uuid import uuid4

import anyio

from numberops.shared.exceptions import (
    DeregistrationFailedError,
    ProviderError,
    RegistrationFailedError,
)
from numberops.shared.logging import get_logger
from numberops.voice_ai.interface import VoiceAIProvider, VoiceAIRegistration

logger = get_logger(__name__)


class MockVoiceAIAdapter(VoiceAIProvider):
    """In-memory voice-AI provider."""

    def __init__(self, latency_seconds: float = 0.0) -> None:
        self._latency_seconds = latency_seconds
        self._registrations: dict[str, str] = {}
        self._failing_numbers: set[str] = set()
        self._register_error: ProviderError | None = None
        self._deregister_error: ProviderError | None = None

        self.register_calls: list[str] = []
        self.deregister_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def reset(self) -> None:
        self._failing_numbers.clear()
        self._register_error = None
        self._deregister_error = None
        self.register_calls.clear()
        self.deregister_calls.clear()

    def fail_registration_for(self, *numbers: str) -> None:
        self._failing_numbers.update(numbers)

    def configure_register_failure(self, error: ProviderError | None) -> None:
        self._register_error = error

    def configure_deregister_failure(self, error: ProviderError | None) -> None:
        self._deregister_error = error

    @property
    def registrations(self) -> dict[str, str]:
        return dict(self._registrations)

    async def register_phone_number(
        self,
        number: str,
        provider_sid: str,
        label: str | None = None,
    ) -> VoiceAIRegistration:
        self.register_calls.append(number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._latency_seconds:
                await anyio.sleep(self._latency_seconds)
            if self._register_error is not None:
                raise self._register_error
            if number in self._failing_numbers:
                raise RegistrationFailedError(
                    message=f"Mock: registration rejected for {number}",
                    step="register",
                )
        finally:
            self.in_flight -= 1

        registration_id = f"phnum_{uuid4().hex[:20]}"
        self._registrations[registration_id] = number
        logger.info("Mock: number registered", extra={"number": number, "registration_id": registration_id})
        return VoiceAIRegistration(registration_id=registration_id, number=number)

    async def deregister_phone_number(self, registration_id: str) -> None:
        self.deregister_calls.append(registration_id)
        if self._latency_seconds:
            await anyio.sleep(self._latency_seconds)
        if self._deregister_error is not None:
            raise self._deregister_error
        if self._registrations.pop(registration_id, None) is None:
            raise DeregistrationFailedError(
                message=f"Mock: unknown registration {registration_id}",
                step="deregister",
            )
