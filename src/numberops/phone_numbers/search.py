"""
Search filter interpretation and request coalescing.

``build_search_query`` turns a user-facing SearchFilter into a single
provider query. A free-text token is read differently depending on its
shape: in US/CA a three-digit token is an area code, a two-letter token
a region, "City, ST" a locality plus region, and other alphabetic text a
locality. Anything else is matched as a "contains" pattern.

``SearchCoalescer`` sits between a typing user and the provider: requests
settle for a short debounce window, only the newest submitted request is
sent, and a response older than one already delivered is dropped.
"""

from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import re

import anyio
from pydantic import BaseModel, ConfigDict, Field, field_validator

from numberops.shared.exceptions import AppException
from numberops.shared.logging import get_logger
from numberops.telephony.interface import (
    AvailableNumber,
    Capability,
    NumberSearchQuery,
    NumberType,
    only_digits,
)

logger = get_logger(__name__)

NANP_COUNTRIES = frozenset({"US", "CA"})

US_STATES: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

CA_PROVINCES: dict[str, str] = {
    "alberta": "AB", "british columbia": "BC", "manitoba": "MB",
    "new brunswick": "NB", "newfoundland and labrador": "NL", "nova scotia": "NS",
    "ontario": "ON", "prince edward island": "PE", "quebec": "QC",
    "saskatchewan": "SK", "northwest territories": "NT", "nunavut": "NU", "yukon": "YT",
}

# Well-known cities whose region is implied when typed alone.
CITY_REGIONS: dict[str, dict[str, str]] = {
    "US": {
        "new york": "NY", "los angeles": "CA", "chicago": "IL", "houston": "TX",
        "phoenix": "AZ", "philadelphia": "PA", "san antonio": "TX", "san diego": "CA",
        "dallas": "TX", "austin": "TX", "san francisco": "CA", "seattle": "WA",
        "denver": "CO", "boston": "MA", "miami": "FL", "atlanta": "GA",
        "las vegas": "NV", "portland": "OR", "detroit": "MI", "nashville": "TN",
    },
    "CA": {
        "toronto": "ON", "montreal": "QC", "vancouver": "BC", "calgary": "AB",
        "edmonton": "AB", "ottawa": "ON", "winnipeg": "MB", "halifax": "NS",
    },
}

_AREA_CODE_RE = re.compile(r"^\d{3}$")
_REGION_CODE_RE = re.compile(r"^[A-Za-z]{2}$")
_CITY_REGION_RE = re.compile(r"^(?P<city>[A-Za-z][A-Za-z .'-]*?)\s*,\s*(?P<region>[A-Za-z][A-Za-z ]*)$")
_ALPHA_RE = re.compile(r"^[A-Za-z][A-Za-z .'-]*$")


class SearchFilter(BaseModel):
    """User-facing search filter. Empty text fields mean "no constraint"."""

    model_config = ConfigDict(frozen=True)

    country: str = Field(..., description="ISO-3166 alpha-2 country code")
    number_type: NumberType = NumberType.LOCAL
    search: str | None = Field(default=None, max_length=64)
    starts_with: str | None = Field(default=None, max_length=16)
    ends_with: str | None = Field(default=None, max_length=16)
    area_code: str | None = Field(default=None, max_length=8)
    voice_enabled: bool = False
    sms_enabled: bool = False
    mms_enabled: bool = False
    fax_enabled: bool = False
    include_beta: bool = False
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("country", mode="before")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        value = str(v).strip().upper()
        if not re.fullmatch(r"[A-Z]{2}", value):
            raise ValueError("country must be a two-letter ISO code")
        return value

    @property
    def capabilities(self) -> frozenset[Capability]:
        flags = {
            Capability.VOICE: self.voice_enabled,
            Capability.SMS: self.sms_enabled,
            Capability.MMS: self.mms_enabled,
            Capability.FAX: self.fax_enabled,
        }
        return frozenset(cap for cap, enabled in flags.items() if enabled)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_digits(value: str | None) -> str | None:
    digits = only_digits(value or "")
    return digits or None


def _region_code(name: str, country: str) -> str | None:
    """Resolve a region name or code to its two-letter code."""
    key = name.strip().lower()
    table = US_STATES if country == "US" else CA_PROVINCES
    if key in table:
        return table[key]
    if len(key) == 2 and key.isalpha():
        return key.upper()
    return None


def interpret_search_token(token: str, country: str) -> dict[str, str]:
    """Map a free-text token onto provider query fields.

    Returns a dict with any of ``area_code``, ``in_region``, ``in_locality``
    and ``contains``.
    """
    nanp = country in NANP_COUNTRIES

    if nanp:
        if _AREA_CODE_RE.match(token):
            return {"area_code": token}
        if _REGION_CODE_RE.match(token):
            return {"in_region": token.upper()}

        match = _CITY_REGION_RE.match(token)
        if match:
            region = _region_code(match.group("region"), country)
            if region is not None:
                return {"in_locality": match.group("city").strip(), "in_region": region}

        if _ALPHA_RE.match(token):
            region = _region_code(token, country)
            if region is not None and len(token) > 2:
                return {"in_region": region}
            city_region = CITY_REGIONS.get(country, {}).get(token.lower())
            if city_region is not None:
                return {"in_locality": token, "in_region": city_region}
            return {"in_locality": token}
    elif _ALPHA_RE.match(token):
        return {"in_locality": token}

    return {"contains": token.replace(" ", "")}


def build_search_query(search_filter: SearchFilter) -> NumberSearchQuery:
    """Build exactly one provider query. Blank fields are omitted."""
    country = search_filter.country
    fields: dict[str, str] = {}

    token = _clean(search_filter.search)
    if token is not None:
        fields.update(interpret_search_token(token, country))

    # An explicit area code wins over one read from the free-text token.
    area_code = _clean_digits(search_filter.area_code)
    if area_code is not None and country in NANP_COUNTRIES:
        fields["area_code"] = area_code

    return NumberSearchQuery(
        country=country,
        number_type=search_filter.number_type,
        area_code=fields.get("area_code"),
        contains=fields.get("contains"),
        in_region=fields.get("in_region"),
        in_locality=fields.get("in_locality"),
        starts_with=_clean_digits(search_filter.starts_with),
        ends_with=_clean_digits(search_filter.ends_with),
        capabilities=search_filter.capabilities,
        include_beta=search_filter.include_beta,
        limit=search_filter.limit,
    )


@dataclass
class SearchOutcome:
    """Result of one coalesced search request.

    ``superseded`` means a newer request arrived during the settle window
    and this one never reached the provider. ``stale`` means the provider
    answered after a newer request's answer was already delivered.
    """

    search_filter: SearchFilter
    sequence: int
    numbers: list[AvailableNumber] = field(default_factory=list)
    superseded: bool = False
    stale: bool = False

    @property
    def discarded(self) -> bool:
        return self.superseded or self.stale


SearchCallable = Callable[[SearchFilter], Awaitable[list[AvailableNumber]]]


class SearchCoalescer:
    """Debounce and order searches for one interactive session."""

    def __init__(self, settle_seconds: float) -> None:
        self._settle_seconds = settle_seconds
        self._latest_submitted = 0
        self._latest_delivered = 0

    @property
    def latest_submitted(self) -> int:
        return self._latest_submitted

    async def submit(self, search_filter: SearchFilter, search: SearchCallable) -> SearchOutcome:
        self._latest_submitted += 1
        sequence = self._latest_submitted

        if self._settle_seconds > 0:
            await anyio.sleep(self._settle_seconds)

        if sequence != self._latest_submitted:
            logger.debug("Search superseded", extra={"sequence": sequence})
            return SearchOutcome(search_filter=search_filter, sequence=sequence, superseded=True)

        try:
            numbers = await search(search_filter)
        except AppException:
            if sequence < self._latest_delivered:
                logger.debug("Stale search failure dropped", extra={"sequence": sequence})
                return SearchOutcome(search_filter=search_filter, sequence=sequence, stale=True)
            raise

        if sequence < self._latest_delivered:
            logger.debug("Stale search response dropped", extra={"sequence": sequence})
            return SearchOutcome(search_filter=search_filter, sequence=sequence, stale=True)

        self._latest_delivered = sequence
        return SearchOutcome(search_filter=search_filter, sequence=sequence, numbers=numbers)


class SearchSessionRegistry:
    """Per-session coalescers, evicting the least recently used beyond ``max_sessions``."""

    def __init__(self, settle_seconds: float, max_sessions: int = 1024) -> None:
        self._settle_seconds = settle_seconds
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, SearchCoalescer] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> SearchCoalescer:
        coalescer = self._sessions.get(session_id)
        if coalescer is None:
            coalescer = SearchCoalescer(self._settle_seconds)
            self._sessions[session_id] = coalescer
            while len(self._sessions) > self._max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(session_id)
        return coalescer
