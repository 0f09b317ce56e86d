"""
Pydantic schemas for the phone number API.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from numberops.phone_numbers.models import PhoneNumberStatus
from numberops.phone_numbers.provisioning import ProvisioningState, PurchaseResult
from numberops.phone_numbers.release import ReleaseResult, ReleaseState
from numberops.phone_numbers.search import SearchOutcome
from numberops.phone_numbers.service import CountryInfo
from numberops.phone_numbers.sync import SyncSummary
from numberops.telephony.interface import AvailableNumber, CountryPricing, NumberType


class AvailableNumberResponse(BaseModel):
    """A number offered by the provider."""

    number: str
    friendly_name: str | None = None
    country: str
    number_type: NumberType
    capabilities: list[str]
    locality: str | None = None
    region: str | None = None
    monthly_price: Decimal | None = None
    setup_price: Decimal = Decimal("0")
    beta: bool = False
    address_requirements: str = "none"
    is_test_account: bool = False
    is_magic_number: bool = False

    @classmethod
    def from_domain(cls, available: AvailableNumber) -> "AvailableNumberResponse":
        return cls(
            number=available.number,
            friendly_name=available.friendly_name,
            country=available.country,
            number_type=available.number_type,
            capabilities=sorted(c.value for c in available.capabilities),
            locality=available.locality,
            region=available.region,
            monthly_price=available.monthly_price,
            setup_price=available.setup_price,
            beta=available.beta,
            address_requirements=available.address_requirements,
            is_test_account=available.is_test_account,
            is_magic_number=available.is_magic_number,
        )


class SearchResponse(BaseModel):
    numbers: list[AvailableNumberResponse]
    superseded: bool = False
    stale: bool = False
    sequence: int | None = None

    @classmethod
    def from_numbers(cls, numbers: list[AvailableNumber]) -> "SearchResponse":
        return cls(numbers=[AvailableNumberResponse.from_domain(n) for n in numbers])

    @classmethod
    def from_outcome(cls, outcome: SearchOutcome) -> "SearchResponse":
        return cls(
            numbers=[AvailableNumberResponse.from_domain(n) for n in outcome.numbers],
            superseded=outcome.superseded,
            stale=outcome.stale,
            sequence=outcome.sequence,
        )


class OwnedNumberResponse(BaseModel):
    """Ownership record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    number: str
    country: str
    friendly_name: str | None
    number_type: str
    capabilities: list[str]
    provider_sid: str
    status: PhoneNumberStatus
    assigned_agent_id: UUID | None
    voice_ai_registration_id: str | None
    is_synced: bool
    is_test_account: bool
    created_at: datetime
    updated_at: datetime


class OwnedNumberListResponse(BaseModel):
    items: list[OwnedNumberResponse]
    total: int


class PurchaseRequest(BaseModel):
    number: str = Field(..., min_length=2, max_length=32, description="E.164 number from a search result")
    country: str = Field(..., min_length=2, max_length=2, description="ISO-3166 alpha-2 country code")
    register_with_voice_ai: bool | None = Field(
        default=None,
        description="Register with the voice-AI provider after purchase; defaults to server setting",
    )

    @field_validator("number")
    @classmethod
    def validate_number(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("+") or not v[1:].isdigit():
            raise ValueError("number must be in E.164 format")
        return v

    @field_validator("country")
    @classmethod
    def upper_country(cls, v: str) -> str:
        return v.upper()


class PurchaseResponse(BaseModel):
    phone_number: OwnedNumberResponse
    state: ProvisioningState
    history: list[ProvisioningState]
    registration_error: dict[str, Any] | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: PurchaseResult) -> "PurchaseResponse":
        return cls(
            phone_number=OwnedNumberResponse.model_validate(result.owned_number),
            state=result.state,
            history=list(result.history),
            registration_error=result.registration_error,
            warnings=list(result.warnings),
        )


class ReleaseRequest(BaseModel):
    confirmation_token: str = Field(
        ..., description="Must match the configured release confirmation phrase exactly"
    )
    force_unassign: bool = Field(default=False, description="Detach an assigned agent first")


class ReleaseResponse(BaseModel):
    owned_number_id: UUID
    number: str
    state: ReleaseState
    history: list[ReleaseState]
    is_simulated: bool
    already_released: bool
    voice_ai_deregistered: bool | None
    warnings: list[str]

    @classmethod
    def from_result(cls, result: ReleaseResult) -> "ReleaseResponse":
        return cls(
            owned_number_id=result.owned_number_id,
            number=result.number,
            state=result.state,
            history=list(result.history),
            is_simulated=result.is_simulated,
            already_released=result.already_released,
            voice_ai_deregistered=result.voice_ai_deregistered,
            warnings=list(result.warnings),
        )


class SyncResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    owned_number_id: UUID
    number: str
    success: bool
    skipped: bool
    registration_id: str | None
    error_code: str | None
    error_message: str | None


class SyncSummaryResponse(BaseModel):
    synced: int
    failed: int
    skipped: int
    message: str
    results: list[SyncResultResponse]

    @classmethod
    def from_summary(cls, summary: SyncSummary) -> "SyncSummaryResponse":
        return cls(
            synced=summary.synced,
            failed=summary.failed,
            skipped=summary.skipped,
            message=summary.message,
            results=[SyncResultResponse.model_validate(r) for r in summary.results],
        )


class AssignAgentRequest(BaseModel):
    agent_id: UUID


class CountryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    beta: bool = False


class CountryListResponse(BaseModel):
    countries: list[CountryResponse]
    total: int


class CountryPricingResponse(BaseModel):
    """Monthly price per number type, keyed by type."""

    country: str
    price_unit: str
    prices: dict[str, Decimal]

    @classmethod
    def from_domain(cls, pricing: CountryPricing) -> "CountryPricingResponse":
        return cls(
            country=pricing.country,
            price_unit=pricing.price_unit,
            prices={number_type.value: price for number_type, price in pricing.prices.items()},
        )


class CountryInfoResponse(BaseModel):
    country: str
    name: str | None = None
    available: bool
    pricing: CountryPricingResponse | None = None

    @classmethod
    def from_info(cls, info: CountryInfo) -> "CountryInfoResponse":
        return cls(
            country=info.country,
            name=info.name,
            available=info.available,
            pricing=CountryPricingResponse.from_domain(info.pricing) if info.pricing else None,
        )
