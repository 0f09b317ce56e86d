"""
Twilio telephony provider adapter.

Talks to the Twilio REST API (2010-04-01) over httpx and maps Twilio error
codes into the shared error taxonomy. Raw Twilio payloads never leave this
module except as ``details["provider_code"]``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from numberops.shared.exceptions import (
    CountryUnsupportedError,
    CredentialsInvalidError,
    CredentialsMissingError,
    InternationalPermissionDeniedError,
    NumberBlockedError,
    NumberInvalidError,
    NumberUnavailableError,
    ProviderConnectionError,
    ProviderError,
    ProviderRequestError,
    ProviderTimeoutError,
    RoutingUnsupportedError,
)
from numberops.shared.logging import get_logger, mask_secret
from numberops.telephony.config import TelephonyConfig, get_telephony_config
from numberops.telephony.interface import (
    AvailableNumber,
    CountryAvailability,
    CountryPricing,
    NumberSearchQuery,
    NumberType,
    PurchasedNumber,
    ReleaseOutcome,
    TelephonyProvider,
    capabilities_from_flags,
    matches_fragments,
)

logger = get_logger(__name__)

TWILIO_ERROR_MAP: dict[int, type[ProviderError]] = {
    20003: CredentialsInvalidError,
    20008: CredentialsInvalidError,
    21408: InternationalPermissionDeniedError,
    21421: NumberInvalidError,
    21422: NumberUnavailableError,
    21610: NumberBlockedError,
    21612: RoutingUnsupportedError,
}

# "Resource not accessible with Test Account Credentials"
TWILIO_TEST_CREDENTIALS_CODE = 20008
TWILIO_NOT_FOUND_CODE = 20404

TWILIO_NUMBER_TYPE_PATH: dict[NumberType, str] = {
    NumberType.LOCAL: "Local",
    NumberType.TOLL_FREE: "TollFree",
    NumberType.MOBILE: "Mobile",
}

TWILIO_PRICE_TYPE: dict[str, NumberType] = {
    "local": NumberType.LOCAL,
    "toll free": NumberType.TOLL_FREE,
    "mobile": NumberType.MOBILE,
}


def _json_payload(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _success_payload(
    response: httpx.Response,
    step: str,
    outcome_unknown: bool = False,
) -> dict[str, Any]:
    """Decode a 2xx body that must be a JSON object.

    With ``outcome_unknown`` the request may already have taken effect on the
    provider, and the raised error says so.
    """
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        return data

    logger.error(
        "Twilio returned an unreadable body",
        extra={"step": step, "status_code": response.status_code},
    )
    details: dict[str, Any] = {"http_status": response.status_code}
    if outcome_unknown:
        details["outcome_unknown"] = True
    raise ProviderRequestError(
        message=f"Telephony provider returned an unreadable {step} response",
        step=step,
        state_mutated=outcome_unknown,
        details=details,
    )


class TwilioAdapter(TelephonyProvider):
    """Twilio telephony provider adapter."""

    def __init__(
        self,
        config: TelephonyConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_telephony_config()
        self._http_client = http_client
        self._owns_client = http_client is None
        self._is_sandbox: bool | None = self._config.is_trial_account

    @property
    def account_sid(self) -> str:
        return self._config.twilio_account_sid

    @property
    def auth_token(self) -> str:
        return self._config.twilio_auth_token

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

    def _get_auth(self) -> tuple[str, str]:
        return (self._config.twilio_account_sid, self._config.twilio_auth_token)

    def _get_api_url(self, endpoint: str) -> str:
        base = self._config.api_base_url.rstrip("/")
        return f"{base}/Accounts/{self._config.twilio_account_sid}{endpoint}"

    def _ensure_credentials(self, step: str) -> None:
        if not self._config.has_credentials:
            raise CredentialsMissingError(
                message="Telephony provider credentials are not configured",
                step=step,
            )

    async def _request(
        self,
        method: str,
        url: str,
        step: str,
        **kwargs: Any,
    ) -> httpx.Response:
        client = self._get_client()
        try:
            return await client.request(method, url, auth=self._get_auth(), **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Twilio request timed out", extra={"step": step, "url": url})
            raise ProviderTimeoutError(
                message=f"Telephony provider timed out: {e!s}",
                step=step,
            ) from e
        except httpx.HTTPError as e:
            logger.exception("HTTP error talking to Twilio", extra={"step": step, "url": url})
            raise ProviderConnectionError(
                message=f"Could not reach telephony provider: {e!s}",
                step=step,
            ) from e

    def _error_from_response(self, response: httpx.Response, step: str) -> ProviderError:
        data = _json_payload(response)
        code = data.get("code")
        message = data.get("message") or f"Telephony provider returned HTTP {response.status_code}"

        if response.status_code == 401:
            error_cls: type[ProviderError] = CredentialsInvalidError
        else:
            error_cls = TWILIO_ERROR_MAP.get(code, ProviderRequestError) if isinstance(code, int) else ProviderRequestError

        logger.error(
            "Twilio request failed",
            extra={
                "step": step,
                "status_code": response.status_code,
                "provider_code": code,
                "error_kind": error_cls.code,
            },
        )
        return error_cls(
            message=message,
            step=step,
            details={"provider_code": code, "http_status": response.status_code},
        )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def is_sandbox_account(self) -> bool:
        if self._is_sandbox is not None:
            return self._is_sandbox

        self._ensure_credentials("account_lookup")
        response = await self._request("GET", self._get_api_url(".json"), "account_lookup")
        if response.status_code >= 400:
            raise self._error_from_response(response, "account_lookup")

        account_type = _success_payload(response, "account_lookup").get("type", "")
        self._is_sandbox = account_type == "Trial"
        logger.info(
            "Twilio account type resolved",
            extra={
                "account_sid": mask_secret(self._config.twilio_account_sid),
                "account_type": account_type,
            },
        )
        return self._is_sandbox

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @staticmethod
    def _search_params(query: NumberSearchQuery) -> dict[str, str]:
        params: dict[str, str] = {"PageSize": str(min(max(query.limit, 1), 100))}
        if query.area_code:
            params["AreaCode"] = query.area_code
        if query.contains:
            params["Contains"] = query.contains
        if query.in_region:
            params["InRegion"] = query.in_region
        if query.in_locality:
            params["InLocality"] = query.in_locality
        # Only send capability flags that are requested; never send "false".
        for capability in sorted(query.capabilities, key=lambda c: c.value):
            params[f"{capability.value.capitalize()}Enabled"] = "true"
        if query.include_beta:
            params["Beta"] = "true"
        return params

    async def _monthly_price(self, country: str, number_type: NumberType) -> Decimal | None:
        try:
            pricing = await self.get_country_pricing(country)
        except ProviderError as e:
            logger.warning("Pricing lookup failed", extra={"country": country, "error_code": e.code})
            return None
        return pricing.monthly_price(number_type)

    # ------------------------------------------------------------------
    # Countries / pricing
    # ------------------------------------------------------------------

    async def list_available_countries(self) -> list[CountryAvailability]:
        self._ensure_credentials("countries")

        response = await self._request("GET", self._get_api_url("/AvailablePhoneNumbers.json"), "countries")
        if response.status_code >= 400:
            raise self._error_from_response(response, "countries")

        countries = [
            CountryAvailability(
                code=str(item["country_code"]).upper(),
                name=item.get("country") or item["country_code"],
                beta=bool(item.get("beta", False)),
            )
            for item in _success_payload(response, "countries").get("countries") or []
            if isinstance(item, dict) and item.get("country_code")
        ]
        logger.info("Twilio countries listed", extra={"count": len(countries)})
        return countries

    async def get_country_pricing(self, country: str) -> CountryPricing:
        self._ensure_credentials("pricing")

        country = country.upper()
        url = f"{self._config.pricing_base_url.rstrip('/')}/PhoneNumbers/Countries/{country}"
        response = await self._request("GET", url, "pricing")
        if response.status_code == 404:
            raise CountryUnsupportedError(
                message=f"No number pricing published for {country}",
                step="pricing",
                details={"country": country},
            )
        if response.status_code >= 400:
            raise self._error_from_response(response, "pricing")

        data = _success_payload(response, "pricing")
        prices: dict[NumberType, Decimal] = {}
        for entry in data.get("phone_number_prices") or []:
            if not isinstance(entry, dict):
                continue
            number_type = TWILIO_PRICE_TYPE.get(str(entry.get("number_type", "")).lower())
            if number_type is None or number_type in prices:
                continue
            try:
                prices[number_type] = Decimal(str(entry.get("current_price") or entry.get("base_price")))
            except InvalidOperation:
                logger.warning(
                    "Unparseable Twilio price",
                    extra={"country": country, "number_type": number_type.value},
                )
        return CountryPricing(country=country, prices=prices, price_unit=data.get("price_unit") or "USD")

    async def search_available_numbers(
        self,
        query: NumberSearchQuery,
    ) -> list[AvailableNumber]:
        self._ensure_credentials("search")

        path = TWILIO_NUMBER_TYPE_PATH[query.number_type]
        url = self._get_api_url(f"/AvailablePhoneNumbers/{query.country}/{path}.json")
        params = self._search_params(query)

        logger.info(
            "Searching Twilio inventory",
            extra={"country": query.country, "number_type": query.number_type.value, "params": params},
        )

        response = await self._request("GET", url, "search", params=params)
        if response.status_code >= 400:
            data = _json_payload(response)
            message = str(data.get("message", ""))
            if (
                response.status_code == 404
                or data.get("code") == TWILIO_NOT_FOUND_CODE
                or "not supported" in message.lower()
            ):
                raise CountryUnsupportedError(
                    message=f"Country {query.country} requires a manual number request",
                    step="search",
                    details={"country": query.country, "provider_code": data.get("code")},
                )
            raise self._error_from_response(response, "search")

        raw_numbers = _json_payload(response).get("available_phone_numbers", [])
        is_test_account = await self.is_sandbox_account()
        monthly_price = await self._monthly_price(query.country, query.number_type)

        numbers = [
            AvailableNumber(
                number=item["phone_number"],
                friendly_name=item.get("friendly_name") or item["phone_number"],
                country=item.get("iso_country") or query.country,
                number_type=query.number_type,
                capabilities=capabilities_from_flags(item.get("capabilities")),
                locality=item.get("locality") or None,
                region=item.get("region") or None,
                monthly_price=monthly_price,
                beta=bool(item.get("beta", False)),
                address_requirements=item.get("address_requirements") or "none",
                is_test_account=is_test_account,
            )
            for item in raw_numbers
        ]

        # Twilio has no native prefix/suffix fields; apply the fragments here.
        if query.starts_with or query.ends_with:
            numbers = [
                n for n in numbers if matches_fragments(n.number, query.starts_with, query.ends_with)
            ]

        logger.info(
            "Twilio inventory search complete",
            extra={"country": query.country, "returned": len(raw_numbers), "matched": len(numbers)},
        )
        return numbers

    # ------------------------------------------------------------------
    # Purchase / release
    # ------------------------------------------------------------------

    async def purchase_number(self, number: str, country: str) -> PurchasedNumber:
        self._ensure_credentials("purchase")

        payload: dict[str, str] = {"PhoneNumber": number}
        voice_url = self._config.get_webhook_url("/webhooks/telephony/voice")
        status_callback = self._config.get_webhook_url("/webhooks/telephony/status")
        if voice_url:
            payload["VoiceUrl"] = voice_url
            payload["VoiceMethod"] = "POST"
        if status_callback:
            payload["StatusCallback"] = status_callback
            payload["StatusCallbackMethod"] = "POST"

        # Resolved before buying so a failed lookup cannot orphan a purchase.
        is_test_account = await self.is_sandbox_account()
        logger.info("Purchasing Twilio number", extra={"number": number, "country": country})

        response = await self._request(
            "POST",
            self._get_api_url("/IncomingPhoneNumbers.json"),
            "purchase",
            data=payload,
        )
        if response.status_code >= 400:
            raise self._error_from_response(response, "purchase")

        data = _success_payload(response, "purchase", outcome_unknown=True)
        sid = data.get("sid")
        if not sid:
            logger.error("Twilio purchase response has no SID", extra={"number": number})
            raise ProviderRequestError(
                message=f"Telephony provider did not return a SID for {number}",
                step="purchase",
                state_mutated=True,
                details={"http_status": response.status_code, "outcome_unknown": True},
            )
        return PurchasedNumber(
            sid=sid,
            number=data.get("phone_number") or number,
            country=data.get("iso_country") or country,
            capabilities=capabilities_from_flags(data.get("capabilities")),
            friendly_name=data.get("friendly_name"),
            is_test_account=is_test_account,
            raw_response=data,
        )

    async def release_number(self, sid: str) -> ReleaseOutcome:
        self._ensure_credentials("release")

        if await self.is_sandbox_account():
            logger.info("Sandbox account; simulating number release", extra={"sid": sid})
            return ReleaseOutcome(sid=sid, is_simulated=True)

        response = await self._request(
            "DELETE",
            self._get_api_url(f"/IncomingPhoneNumbers/{sid}.json"),
            "release",
        )
        if response.status_code < 400:
            logger.info("Twilio number released", extra={"sid": sid})
            return ReleaseOutcome(sid=sid)

        code = _json_payload(response).get("code")
        if code == TWILIO_TEST_CREDENTIALS_CODE:
            logger.info("Provider refused release for test credentials; simulating", extra={"sid": sid})
            return ReleaseOutcome(sid=sid, is_simulated=True)
        if response.status_code == 404 or code == TWILIO_NOT_FOUND_CODE:
            logger.warning("Number already absent on provider", extra={"sid": sid})
            return ReleaseOutcome(sid=sid, already_released=True)

        raise self._error_from_response(response, "release")
