"""
Phone number lifecycle API router.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from numberops.config import get_settings
from numberops.phone_numbers.models import PhoneNumberStatus
from numberops.phone_numbers.schemas import (
    AssignAgentRequest,
    CountryInfoResponse,
    CountryListResponse,
    CountryPricingResponse,
    CountryResponse,
    OwnedNumberListResponse,
    OwnedNumberResponse,
    PurchaseRequest,
    PurchaseResponse,
    ReleaseRequest,
    ReleaseResponse,
    SearchResponse,
    SyncResultResponse,
    SyncSummaryResponse,
)
from numberops.phone_numbers.search import SearchFilter
from numberops.phone_numbers.service import PhoneNumberService
from numberops.shared.database import get_db_session
from numberops.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/phone-numbers", tags=["phone-numbers"])

ERROR_RESPONSES = {
    404: {"description": "Phone number not found"},
    409: {"description": "Conflicting lifecycle state"},
    502: {"description": "Provider error"},
    504: {"description": "Provider timeout"},
}


def get_phone_number_service(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PhoneNumberService:
    """Dependency for the phone number service."""
    state = request.app.state
    return PhoneNumberService(
        session=session,
        telephony=state.telephony_provider,
        voice_ai=state.voice_ai_provider,
        leases=state.purchase_leases,
        search_sessions=state.search_sessions,
        settings=get_settings(),
    )


ServiceDep = Annotated[PhoneNumberService, Depends(get_phone_number_service)]
CountryCode = Annotated[
    str,
    Path(pattern="^[A-Za-z]{2}$", description="ISO-3166 alpha-2 country code"),
]


@router.get("/available", response_model=SearchResponse, responses=ERROR_RESPONSES)
async def search_available_numbers(
    search_filter: Annotated[SearchFilter, Query()],
    service: ServiceDep,
    search_session: Annotated[
        str | None,
        Header(
            alias="X-Search-Session",
            max_length=128,
            description="Interactive session id; enables debounced search",
        ),
    ] = None,
) -> SearchResponse:
    """Search the provider's inventory.

    With an ``X-Search-Session`` header, requests from the same session
    are debounced and only the newest one is answered; older ones come back
    with ``superseded`` or ``stale`` set and no numbers.
    """
    if search_session:
        outcome = await service.search_numbers_coalesced(search_session, search_filter)
        return SearchResponse.from_outcome(outcome)
    numbers = await service.search_numbers(search_filter)
    return SearchResponse.from_numbers(numbers)


@router.get("", response_model=OwnedNumberListResponse)
async def list_owned_numbers(
    service: ServiceDep,
    status_filter: Annotated[PhoneNumberStatus | None, Query(alias="status")] = None,
) -> OwnedNumberListResponse:
    owned = await service.list_owned_numbers(status=status_filter)
    items = [OwnedNumberResponse.model_validate(o) for o in owned]
    return OwnedNumberListResponse(items=items, total=len(items))


@router.get("/countries", response_model=CountryListResponse, responses=ERROR_RESPONSES)
async def list_available_countries(service: ServiceDep) -> CountryListResponse:
    countries = [CountryResponse.model_validate(c) for c in await service.list_available_countries()]
    return CountryListResponse(countries=countries, total=len(countries))


@router.get(
    "/countries/{country_code}",
    response_model=CountryInfoResponse,
    responses=ERROR_RESPONSES,
)
async def get_country_info(country_code: CountryCode, service: ServiceDep) -> CountryInfoResponse:
    """Whether the provider lists ``country_code``, with its pricing when known."""
    info = await service.get_country_info(country_code)
    return CountryInfoResponse.from_info(info)


@router.get(
    "/pricing/{country_code}",
    response_model=CountryPricingResponse,
    responses={422: {"description": "Country not sold by the provider"}, **ERROR_RESPONSES},
)
async def get_country_pricing(
    country_code: CountryCode,
    service: ServiceDep,
) -> CountryPricingResponse:
    pricing = await service.get_country_pricing(country_code)
    return CountryPricingResponse.from_domain(pricing)


@router.get("/{owned_number_id}", response_model=OwnedNumberResponse, responses=ERROR_RESPONSES)
async def get_owned_number(owned_number_id: UUID, service: ServiceDep) -> OwnedNumberResponse:
    owned = await service.get_owned_number(owned_number_id)
    return OwnedNumberResponse.model_validate(owned)


@router.post(
    "/buy",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def buy_number(payload: PurchaseRequest, service: ServiceDep) -> PurchaseResponse:
    """Purchase a number picked from a search result.

    A voice-AI registration failure does not fail the request: the number
    is returned unregistered with ``registration_error`` set.
    """
    logger.info("Purchase requested", extra={"number": payload.number, "country": payload.country})
    result = await service.purchase_number(
        payload.number,
        payload.country,
        register=payload.register_with_voice_ai,
    )
    return PurchaseResponse.from_result(result)


@router.post(
    "/{owned_number_id}/release",
    response_model=ReleaseResponse,
    responses={400: {"description": "Confirmation mismatch"}, **ERROR_RESPONSES},
)
async def release_number(
    owned_number_id: UUID,
    payload: ReleaseRequest,
    service: ServiceDep,
) -> ReleaseResponse:
    logger.info("Release requested", extra={"owned_number_id": str(owned_number_id)})
    result = await service.release_number(
        owned_number_id,
        payload.confirmation_token,
        force_unassign=payload.force_unassign,
    )
    return ReleaseResponse.from_result(result)


@router.post("/sync", response_model=SyncSummaryResponse)
async def sync_all_numbers(service: ServiceDep) -> SyncSummaryResponse:
    summary = await service.sync_all_numbers()
    return SyncSummaryResponse.from_summary(summary)


@router.post(
    "/{owned_number_id}/sync",
    response_model=SyncResultResponse,
    responses=ERROR_RESPONSES,
)
async def sync_number(owned_number_id: UUID, service: ServiceDep) -> SyncResultResponse:
    result = await service.sync_number(owned_number_id)
    return SyncResultResponse.model_validate(result)


@router.put(
    "/{owned_number_id}/agent",
    response_model=OwnedNumberResponse,
    responses=ERROR_RESPONSES,
)
async def assign_agent(
    owned_number_id: UUID,
    payload: AssignAgentRequest,
    service: ServiceDep,
) -> OwnedNumberResponse:
    owned = await service.assign_agent(owned_number_id, payload.agent_id)
    return OwnedNumberResponse.model_validate(owned)


@router.delete(
    "/{owned_number_id}/agent",
    response_model=OwnedNumberResponse,
    responses=ERROR_RESPONSES,
)
async def unassign_agent(owned_number_id: UUID, service: ServiceDep) -> OwnedNumberResponse:
    owned = await service.unassign_agent(owned_number_id)
    return OwnedNumberResponse.model_validate(owned)
