"""
ElevenLabs conversational-AI adapter.

Registers Twilio numbers under ``/v1/convai/phone-numbers``. The provider
needs the telephony account SID and auth token to take over call routing, so
the adapter is built with both.
"""

from __future__ import annotations

from typing import Any

import httpx

from numberops.shared.exceptions import (
    CredentialsInvalidError,
    CredentialsMissingError,
    DeregistrationFailedError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    RegistrationFailedError,
)
from numberops.shared.logging import get_logger
from numberops.voice_ai.config import VoiceAIConfig, get_voice_ai_config
from numberops.voice_ai.interface import VoiceAIProvider, VoiceAIRegistration

logger = get_logger(__name__)


class ElevenLabsAdapter(VoiceAIProvider):
    """ElevenLabs voice-AI provider adapter."""

    def __init__(
        self,
        config: VoiceAIConfig | None = None,
        telephony_account_sid: str = "",
        telephony_auth_token: str = "",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_voice_ai_config()
        self._telephony_account_sid = telephony_account_sid
        self._telephony_auth_token = telephony_auth_token
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.request_timeout_seconds)
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _url(self, path: str) -> str:
        return f"{self._config.api_base_url.rstrip('/')}/v1/convai{path}"

    def _headers(self, step: str) -> dict[str, str]:
        if not self._config.api_key:
            raise CredentialsMissingError(
                message="Voice-AI provider API key is not configured",
                step=step,
            )
        return {"xi-api-key": self._config.api_key, "Accept": "application/json"}

    async def _request(self, method: str, url: str, step: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers(step)
        try:
            return await self._get_client().request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                message=f"Voice-AI provider timed out: {e!s}",
                step=step,
            ) from e
        except httpx.HTTPError as e:
            logger.exception("HTTP error talking to voice-AI provider", extra={"step": step})
            raise ProviderConnectionError(
                message=f"Could not reach voice-AI provider: {e!s}",
                step=step,
            ) from e

    @staticmethod
    def _error_from_response(
        response: httpx.Response,
        step: str,
        default_cls: type[ProviderError],
    ) -> ProviderError:
        detail: Any = None
        if response.content:
            try:
                detail = response.json().get("detail")
            except (ValueError, AttributeError):
                detail = response.text
        error_cls = CredentialsInvalidError if response.status_code in (401, 403) else default_cls
        return error_cls(
            message=f"Voice-AI provider returned HTTP {response.status_code}",
            step=step,
            details={"http_status": response.status_code, "provider_detail": detail},
        )

    async def register_phone_number(
        self,
        number: str,
        provider_sid: str,
        label: str | None = None,
    ) -> VoiceAIRegistration:
        if not (self._telephony_account_sid and self._telephony_auth_token):
            raise CredentialsMissingError(
                message="Telephony credentials are required to register a number",
                step="register",
            )

        body = {
            "phone_number": number,
            "label": label or number,
            "provider": "twilio",
            # Account SID, not the phone number SID
            "sid": self._telephony_account_sid,
            "token": self._telephony_auth_token,
        }

        logger.info(
            "Registering number with voice-AI provider",
            extra={"number": number, "provider_sid": provider_sid},
        )
        response = await self._request("POST", self._url("/phone-numbers"), "register", json=body)
        if response.status_code >= 400:
            error = self._error_from_response(response, "register", RegistrationFailedError)
            logger.error(
                "Voice-AI registration rejected",
                extra={"number": number, "status_code": response.status_code},
            )
            raise error

        try:
            data = response.json()
        except ValueError:
            data = None
        registration_id = data.get("phone_number_id") if isinstance(data, dict) else None
        if not registration_id:
            logger.error(
                "Voice-AI registration response unreadable",
                extra={"number": number, "status_code": response.status_code},
            )
            raise RegistrationFailedError(
                message="Voice-AI provider did not return a registration id",
                step="register",
                details={"http_status": response.status_code},
            )
        return VoiceAIRegistration(registration_id=registration_id, number=number, raw_response=data)

    async def deregister_phone_number(self, registration_id: str) -> None:
        response = await self._request(
            "DELETE",
            self._url(f"/phone-numbers/{registration_id}"),
            "deregister",
        )
        if response.status_code == 404:
            logger.warning(
                "Voice-AI registration already absent",
                extra={"registration_id": registration_id},
            )
            return
        if response.status_code >= 400:
            raise self._error_from_response(response, "deregister", DeregistrationFailedError)
        logger.info("Voice-AI registration removed", extra={"registration_id": registration_id})
