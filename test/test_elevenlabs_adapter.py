"""Tests for the ElevenLabs voice-AI adapter."""

import json

import httpx
import pytest

from numberops.shared.exceptions import (
    CredentialsInvalidError,
    CredentialsMissingError,
    DeregistrationFailedError,
    RegistrationFailedError,
)
from numberops.voice_ai.config import VoiceAIConfig, VoiceAIProviderType
from numberops.voice_ai.elevenlabs_adapter import ElevenLabsAdapter


@pytest.fixture
def voice_ai_config() -> VoiceAIConfig:
    return VoiceAIConfig(
        provider_type=VoiceAIProviderType.ELEVENLABS,
        api_key="xi_test_key",
        api_base_url="https://api.elevenlabs.test",
    )


def _adapter(
    config: VoiceAIConfig,
    handler,
    account_sid: str = "AC_TEST_ACCOUNT_SID",
    auth_token: str = "test_auth_token",
) -> tuple[ElevenLabsAdapter, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    adapter = ElevenLabsAdapter(
        config,
        telephony_account_sid=account_sid,
        telephony_auth_token=auth_token,
        http_client=client,
    )
    return adapter, seen


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_sends_account_credentials(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, seen = _adapter(
            voice_ai_config,
            lambda r: httpx.Response(200, json={"phone_number_id": "phnum_abc123"}),
        )

        registration = await adapter.register_phone_number("+15551234567", "PN_NUMBER_SID", "Support line")

        assert registration.registration_id == "phnum_abc123"
        assert registration.number == "+15551234567"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.elevenlabs.test/v1/convai/phone-numbers"
        assert request.headers["xi-api-key"] == "xi_test_key"
        body = json.loads(request.content)
        assert body == {
            "phone_number": "+15551234567",
            "label": "Support line",
            "provider": "twilio",
            "sid": "AC_TEST_ACCOUNT_SID",
            "token": "test_auth_token",
        }

    @pytest.mark.asyncio
    async def test_label_defaults_to_number(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, seen = _adapter(
            voice_ai_config,
            lambda r: httpx.Response(200, json={"phone_number_id": "phnum_abc123"}),
        )

        await adapter.register_phone_number("+15551234567", "PN_NUMBER_SID")

        assert json.loads(seen[0].content)["label"] == "+15551234567"

    @pytest.mark.asyncio
    async def test_missing_api_key(self) -> None:
        config = VoiceAIConfig(api_key="", api_base_url="https://api.elevenlabs.test")
        adapter, seen = _adapter(config, lambda r: httpx.Response(200, json={}))

        with pytest.raises(CredentialsMissingError):
            await adapter.register_phone_number("+15551234567", "PN1")

        assert seen == []

    @pytest.mark.asyncio
    async def test_missing_telephony_credentials(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, seen = _adapter(
            voice_ai_config,
            lambda r: httpx.Response(200, json={}),
            account_sid="",
            auth_token="",
        )

        with pytest.raises(CredentialsMissingError):
            await adapter.register_phone_number("+15551234567", "PN1")

        assert seen == []

    @pytest.mark.asyncio
    async def test_unauthorized(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, _ = _adapter(
            voice_ai_config,
            lambda r: httpx.Response(401, json={"detail": {"status": "invalid_api_key"}}),
        )

        with pytest.raises(CredentialsInvalidError):
            await adapter.register_phone_number("+15551234567", "PN1")

    @pytest.mark.asyncio
    async def test_rejected(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, _ = _adapter(
            voice_ai_config,
            lambda r: httpx.Response(422, json={"detail": "phone number already exists"}),
        )

        with pytest.raises(RegistrationFailedError) as exc_info:
            await adapter.register_phone_number("+15551234567", "PN1")

        assert exc_info.value.details["provider_detail"] == "phone number already exists"

    @pytest.mark.asyncio
    async def test_missing_registration_id(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, _ = _adapter(voice_ai_config, lambda r: httpx.Response(200, json={}))

        with pytest.raises(RegistrationFailedError):
            await adapter.register_phone_number("+15551234567", "PN1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{"text": "<html>gateway</html>"}, {"json": ["phnum_1"]}],
    )
    async def test_unreadable_response(self, voice_ai_config: VoiceAIConfig, body: dict) -> None:
        adapter, _ = _adapter(voice_ai_config, lambda r: httpx.Response(200, **body))

        with pytest.raises(RegistrationFailedError) as exc_info:
            await adapter.register_phone_number("+15551234567", "PN1")

        assert exc_info.value.step == "register"
        assert exc_info.value.details["http_status"] == 200


class TestDeregister:
    @pytest.mark.asyncio
    async def test_deregister(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, seen = _adapter(voice_ai_config, lambda r: httpx.Response(200, json={}))

        await adapter.deregister_phone_number("phnum_abc123")

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/v1/convai/phone-numbers/phnum_abc123"

    @pytest.mark.asyncio
    async def test_already_gone_is_success(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, _ = _adapter(voice_ai_config, lambda r: httpx.Response(404, json={"detail": "not found"}))

        await adapter.deregister_phone_number("phnum_abc123")

    @pytest.mark.asyncio
    async def test_failure(self, voice_ai_config: VoiceAIConfig) -> None:
        adapter, _ = _adapter(voice_ai_config, lambda r: httpx.Response(500, text="boom"))

        with pytest.raises(DeregistrationFailedError):
            await adapter.deregister_phone_number("phnum_abc123")
