"""
Mock telephony provider adapter for development and testing.

Keeps an in-memory inventory and reproduces the provider's test-credential
"magic numbers", each of which deterministically triggers one failure kind.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import anyio

from numberops.shared.exceptions import (
    CountryUnsupportedError,
    InternationalPermissionDeniedError,
    NumberBlockedError,
    NumberInvalidError,
    NumberUnavailableError,
    ProviderError,
    RoutingUnsupportedError,
)
from numberops.shared.logging import get_logger
from numberops.telephony.interface import (
    AvailableNumber,
    Capability,
    CountryAvailability,
    CountryPricing,
    NumberSearchQuery,
    NumberType,
    PurchasedNumber,
    ReleaseOutcome,
    TelephonyProvider,
    matches_fragments,
    only_digits,
)

logger = get_logger(__name__)

ALL_CAPABILITIES = frozenset({Capability.VOICE, Capability.SMS, Capability.MMS})

MAGIC_SUCCESS_NUMBER = "+15005550006"

# number -> (error kind, provider code)
MAGIC_NUMBER_FAILURES: dict[str, tuple[type[ProviderError], int]] = {
    "+15005550000": (NumberUnavailableError, 21422),
    "+15005550001": (NumberInvalidError, 21421),
    "+15005550002": (RoutingUnsupportedError, 21612),
    "+15005550003": (InternationalPermissionDeniedError, 21408),
    "+15005550004": (NumberBlockedError, 21610),
}

DEFAULT_SUPPORTED_COUNTRIES = frozenset({"US", "CA", "GB", "ES", "MX"})

COUNTRY_NAMES = {
    "US": "United States",
    "CA": "Canada",
    "GB": "United Kingdom",
    "ES": "Spain",
    "MX": "Mexico",
}

DEFAULT_PRICES = {
    NumberType.LOCAL: Decimal("1.15"),
    NumberType.TOLL_FREE: Decimal("2.15"),
    NumberType.MOBILE: Decimal("1.15"),
}


def _number(
    number: str,
    country: str,
    locality: str,
    region: str,
    number_type: NumberType = NumberType.LOCAL,
    capabilities: frozenset[Capability] = ALL_CAPABILITIES,
) -> AvailableNumber:
    return AvailableNumber(
        number=number,
        friendly_name=number,
        country=country,
        number_type=number_type,
        capabilities=capabilities,
        locality=locality,
        region=region,
        monthly_price=Decimal("1.15"),
    )


def default_inventory() -> list[AvailableNumber]:
    return [
        _number("+15551234567", "US", "Miami", "FL"),
        _number("+15557654321", "US", "Miami", "FL", capabilities=frozenset({Capability.VOICE})),
        _number("+14155550123", "US", "San Francisco", "CA"),
        _number("+18005550100", "US", "", "", number_type=NumberType.TOLL_FREE),
        _number("+16045550199", "CA", "Vancouver", "BC"),
        _number("+442071234567", "GB", "London", "ENG", capabilities=frozenset({Capability.VOICE})),
    ]


def magic_inventory() -> list[AvailableNumber]:
    numbers = [MAGIC_SUCCESS_NUMBER, *MAGIC_NUMBER_FAILURES]
    return [
        replace(
            _number(n, "US", "Test", "CA"),
            friendly_name=f"Magic Number {n}",
            is_test_account=True,
            is_magic_number=True,
        )
        for n in numbers
    ]


class MockTelephonyAdapter(TelephonyProvider):
    """In-memory telephony provider."""

    def __init__(
        self,
        inventory: list[AvailableNumber] | None = None,
        is_sandbox: bool = False,
        supported_countries: frozenset[str] = DEFAULT_SUPPORTED_COUNTRIES,
        latency_seconds: float = 0.0,
    ) -> None:
        self._is_sandbox = is_sandbox
        self._inventory: dict[str, AvailableNumber] = {
            n.number: n for n in (inventory if inventory is not None else default_inventory())
        }
        if is_sandbox:
            self._inventory.update({n.number: n for n in magic_inventory()})
        self._supported_countries = supported_countries
        self._latency_seconds = latency_seconds
        self._owned: dict[str, AvailableNumber] = {}
        self._failures: dict[str, ProviderError] = {}

        self.searches: list[NumberSearchQuery] = []
        self.purchases: list[str] = []
        self.releases: list[str] = []

    def reset(self) -> None:
        self._failures.clear()
        self.searches.clear()
        self.purchases.clear()
        self.releases.clear()

    def configure_failure(self, operation: str, error: ProviderError | None) -> None:
        """Make ``operation`` (e.g. "search", "purchase", "pricing") raise ``error``."""
        if error is None:
            self._failures.pop(operation, None)
        else:
            self._failures[operation] = error

    @property
    def owned_sids(self) -> list[str]:
        return list(self._owned)

    async def _simulate_call(self, operation: str) -> None:
        if self._latency_seconds:
            await anyio.sleep(self._latency_seconds)
        error = self._failures.get(operation)
        if error is not None:
            raise error

    async def is_sandbox_account(self) -> bool:
        return self._is_sandbox

    async def search_available_numbers(
        self,
        query: NumberSearchQuery,
    ) -> list[AvailableNumber]:
        self.searches.append(query)
        await self._simulate_call("search")

        if query.country not in self._supported_countries:
            raise CountryUnsupportedError(
                message=f"Country {query.country} requires a manual number request",
                step="search",
                details={"country": query.country},
            )

        results: list[AvailableNumber] = []
        for candidate in self._inventory.values():
            if candidate.country != query.country or candidate.number_type != query.number_type:
                continue
            if not query.capabilities <= candidate.capabilities:
                continue
            if query.area_code and not only_digits(candidate.number)[1:4] == query.area_code:
                continue
            if query.contains and query.contains not in only_digits(candidate.number):
                continue
            if query.in_region and (candidate.region or "").upper() != query.in_region.upper():
                continue
            if query.in_locality and (candidate.locality or "").lower() != query.in_locality.lower():
                continue
            if not matches_fragments(candidate.number, query.starts_with, query.ends_with):
                continue
            results.append(replace(candidate, is_test_account=self._is_sandbox))

        logger.info(
            "Mock: inventory search",
            extra={"country": query.country, "matched": len(results)},
        )
        return results[: query.limit]

    async def purchase_number(self, number: str, country: str) -> PurchasedNumber:
        self.purchases.append(number)
        await self._simulate_call("purchase")

        magic_failure = MAGIC_NUMBER_FAILURES.get(number) if self._is_sandbox else None
        if magic_failure is not None:
            error_cls, provider_code = magic_failure
            raise error_cls(
                message=f"Magic number {number} rejected (Error {provider_code})",
                step="purchase",
                details={"provider_code": provider_code},
            )

        candidate = self._inventory.pop(number, None)
        if candidate is None:
            raise NumberUnavailableError(
                message=f"Number {number} is not available",
                step="purchase",
                details={"provider_code": 21422},
            )

        sid = f"PN{uuid4().hex}"
        self._owned[sid] = candidate
        logger.info("Mock: number purchased", extra={"number": number, "sid": sid})

        return PurchasedNumber(
            sid=sid,
            number=number,
            country=candidate.country or country,
            capabilities=candidate.capabilities,
            friendly_name=candidate.friendly_name,
            is_test_account=self._is_sandbox,
            raw_response={"mock": True, "sid": sid},
        )

    async def release_number(self, sid: str) -> ReleaseOutcome:
        self.releases.append(sid)
        await self._simulate_call("release")

        if self._is_sandbox:
            return ReleaseOutcome(sid=sid, is_simulated=True)

        candidate = self._owned.pop(sid, None)
        if candidate is None:
            return ReleaseOutcome(sid=sid, already_released=True)

        self._inventory[candidate.number] = candidate
        return ReleaseOutcome(sid=sid)

    async def list_available_countries(self) -> list[CountryAvailability]:
        await self._simulate_call("countries")
        return [
            CountryAvailability(code=code, name=COUNTRY_NAMES.get(code, code))
            for code in sorted(self._supported_countries)
        ]

    async def get_country_pricing(self, country: str) -> CountryPricing:
        await self._simulate_call("pricing")
        country = country.upper()
        if country not in self._supported_countries:
            raise CountryUnsupportedError(
                message=f"No pricing for country {country}",
                step="pricing",
                details={"country": country},
            )
        return CountryPricing(country=country, prices=dict(DEFAULT_PRICES))
