"""
Telephony provider interface definition.

Adapters expose number-inventory search, purchase and release behind one
interface and translate provider error codes into the shared error taxonomy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class NumberType(str, Enum):
    """Phone number inventory types."""

    LOCAL = "local"
    TOLL_FREE = "tollFree"
    MOBILE = "mobile"


class Capability(str, Enum):
    """Number capabilities."""

    VOICE = "voice"
    SMS = "sms"
    MMS = "mms"
    FAX = "fax"


@dataclass(frozen=True)
class NumberSearchQuery:
    """A single provider query built from a search filter.

    ``None`` means "omit from the provider request". Text fields are never
    empty strings.
    """

    country: str
    number_type: NumberType = NumberType.LOCAL
    area_code: str | None = None
    contains: str | None = None
    in_region: str | None = None
    in_locality: str | None = None
    starts_with: str | None = None
    ends_with: str | None = None
    capabilities: frozenset[Capability] = frozenset()
    include_beta: bool = False
    limit: int = 20


@dataclass(frozen=True)
class AvailableNumber:
    """A number offered by the provider. Exists only for one search response."""

    number: str
    country: str
    number_type: NumberType
    capabilities: frozenset[Capability]
    friendly_name: str | None = None
    locality: str | None = None
    region: str | None = None
    monthly_price: Decimal | None = None
    setup_price: Decimal = Decimal("0")
    beta: bool = False
    address_requirements: str = "none"
    is_test_account: bool = False
    is_magic_number: bool = False


@dataclass(frozen=True)
class PurchasedNumber:
    """Provider response to a successful purchase."""

    sid: str
    number: str
    country: str
    capabilities: frozenset[Capability]
    friendly_name: str | None = None
    is_test_account: bool = False
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReleaseOutcome:
    """Provider response to a release request.

    ``is_simulated`` is True when the account cannot truly release numbers;
    in that case nothing was freed on the provider side.
    """

    sid: str
    is_simulated: bool = False
    already_released: bool = False


@dataclass(frozen=True)
class CountryAvailability:
    """A country whose inventory the provider lists."""

    code: str
    name: str
    beta: bool = False


@dataclass(frozen=True)
class CountryPricing:
    """Monthly price per number type for one country.

    Number types the provider does not sell in the country are absent.
    """

    country: str
    prices: dict[NumberType, Decimal] = field(default_factory=dict)
    price_unit: str = "USD"

    def monthly_price(self, number_type: NumberType) -> Decimal | None:
        return self.prices.get(number_type)


class TelephonyProvider(ABC):
    """Abstract interface for telephony providers."""

    @abstractmethod
    async def search_available_numbers(
        self,
        query: NumberSearchQuery,
    ) -> list[AvailableNumber]:
        """Search the provider's inventory."""
        ...

    @abstractmethod
    async def purchase_number(self, number: str, country: str) -> PurchasedNumber:
        """Buy ``number`` for this account."""
        ...

    @abstractmethod
    async def release_number(self, sid: str) -> ReleaseOutcome:
        """Release a previously purchased number by provider SID."""
        ...

    @abstractmethod
    async def is_sandbox_account(self) -> bool:
        """Whether the configured account is a trial/test account."""
        ...

    @abstractmethod
    async def list_available_countries(self) -> list[CountryAvailability]:
        """Countries with self-service number inventory."""
        ...

    @abstractmethod
    async def get_country_pricing(self, country: str) -> CountryPricing:
        """Monthly number prices for ``country``."""
        ...

    @property
    def account_sid(self) -> str:
        """Provider account identifier, when the provider has one."""
        return ""

    @property
    def auth_token(self) -> str:
        """Provider account secret, shared with the voice-AI provider on registration."""
        return ""

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None


def only_digits(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


def matches_fragments(
    number: str,
    starts_with: str | None = None,
    ends_with: str | None = None,
) -> bool:
    """Check digit fragments against a number.

    For NANP numbers (+1 and eleven digits) ``starts_with`` matches the local
    exchange, i.e. the three digits after the area code. Elsewhere it matches
    anywhere in the number.
    """
    digits = only_digits(number)
    if starts_with:
        pattern = only_digits(starts_with)
        if digits.startswith("1") and len(digits) == 11:
            if not digits[4:7].startswith(pattern):
                return False
        elif pattern not in digits:
            return False
    if ends_with and not digits.endswith(only_digits(ends_with)):
        return False
    return True


def capabilities_from_flags(flags: dict[str, Any] | None) -> frozenset[Capability]:
    """Build a capability set from a provider ``{"voice": true, "SMS": false}`` map."""
    result: set[Capability] = set()
    for key, enabled in (flags or {}).items():
        if not enabled:
            continue
        try:
            result.add(Capability(str(key).lower()))
        except ValueError:
            continue
    return frozenset(result)
