"""
Phone number lifecycle service.

Facade over country lookups, search, purchase, release, sync and agent
assignment. One instance serves one request and shares that request's
session.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from numberops.config import Settings, get_settings
from numberops.phone_numbers.locks import PurchaseLeaseRegistry
from numberops.phone_numbers.models import OwnedNumber, PhoneNumberStatus
from numberops.phone_numbers.provisioning import ProvisioningOrchestrator, PurchaseResult
from numberops.phone_numbers.release import ReleaseOrchestrator, ReleaseResult
from numberops.phone_numbers.repository import OwnedNumberRepository
from numberops.phone_numbers.search import (
    SearchFilter,
    SearchOutcome,
    SearchSessionRegistry,
    build_search_query,
)
from numberops.phone_numbers.sync import SyncReconciler, SyncResult, SyncSummary
from numberops.shared.exceptions import OwnedNumberNotFoundError, ProviderError
from numberops.shared.logging import get_logger
from numberops.shared.timeouts import bounded_call
from numberops.telephony.interface import (
    AvailableNumber,
    CountryAvailability,
    CountryPricing,
    TelephonyProvider,
)
from numberops.voice_ai.interface import VoiceAIProvider

logger = get_logger(__name__)


@dataclass
class CountryInfo:
    country: str
    name: str | None
    available: bool
    pricing: CountryPricing | None = None


class PhoneNumberService:
    """Service for the phone number lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        telephony: TelephonyProvider,
        voice_ai: VoiceAIProvider,
        leases: PurchaseLeaseRegistry,
        search_sessions: SearchSessionRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._repo = OwnedNumberRepository(session)
        self._telephony = telephony
        self._voice_ai = voice_ai
        self._leases = leases
        self._settings = settings or get_settings()
        if search_sessions is None:
            search_sessions = SearchSessionRegistry(self._settings.search_debounce_seconds)
        self._search_sessions = search_sessions

    async def list_available_countries(self) -> list[CountryAvailability]:
        return await bounded_call(
            "countries",
            self._telephony.list_available_countries,
            timeout=self._settings.provider_timeout_seconds,
        )

    async def get_country_pricing(self, country: str) -> CountryPricing:
        return await bounded_call(
            "pricing",
            self._telephony.get_country_pricing,
            country.upper(),
            timeout=self._settings.provider_timeout_seconds,
        )

    async def get_country_info(self, country: str) -> CountryInfo:
        """Availability and pricing of one country.

        Pricing is only looked up for listed countries, and a pricing error
        leaves it empty instead of failing the lookup.
        """
        country = country.upper()
        listed = await self.list_available_countries()
        match = next((c for c in listed if c.code == country), None)
        if match is None:
            return CountryInfo(country=country, name=None, available=False)

        pricing = None
        try:
            pricing = await self.get_country_pricing(country)
        except ProviderError as e:
            logger.warning(
                "Country pricing unavailable",
                extra={"country": country, "error_code": e.code},
            )
        return CountryInfo(country=country, name=match.name, available=True, pricing=pricing)

    async def search_numbers(self, search_filter: SearchFilter) -> list[AvailableNumber]:
        """Query the provider's inventory once for ``search_filter``."""
        query = build_search_query(search_filter)
        logger.info(
            "Searching available numbers",
            extra={
                "country": query.country,
                "number_type": query.number_type.value,
                "area_code": query.area_code,
                "contains": query.contains,
                "in_region": query.in_region,
                "in_locality": query.in_locality,
            },
        )
        return await bounded_call(
            "search",
            self._telephony.search_available_numbers,
            query,
            timeout=self._settings.provider_timeout_seconds,
        )

    async def search_numbers_coalesced(
        self,
        session_id: str,
        search_filter: SearchFilter,
    ) -> SearchOutcome:
        """Search through the debounced, last-request-wins path of ``session_id``."""
        coalescer = self._search_sessions.get(session_id)
        return await coalescer.submit(search_filter, self.search_numbers)

    async def purchase_number(
        self,
        number: str,
        country: str,
        register: bool | None = None,
    ) -> PurchaseResult:
        orchestrator = ProvisioningOrchestrator(
            self._session, self._telephony, self._voice_ai, self._leases, self._settings
        )
        return await orchestrator.purchase(number, country, register=register)

    async def release_number(
        self,
        owned_number_id: UUID,
        confirmation_token: str,
        force_unassign: bool = False,
    ) -> ReleaseResult:
        orchestrator = ReleaseOrchestrator(
            self._session, self._telephony, self._voice_ai, self._settings
        )
        return await orchestrator.release(
            owned_number_id, confirmation_token, force_unassign=force_unassign
        )

    async def sync_number(self, owned_number_id: UUID) -> SyncResult:
        return await SyncReconciler(self._session, self._voice_ai, self._settings).sync_one(
            owned_number_id
        )

    async def sync_all_numbers(self) -> SyncSummary:
        return await SyncReconciler(self._session, self._voice_ai, self._settings).sync_all()

    async def list_owned_numbers(
        self,
        status: PhoneNumberStatus | None = None,
    ) -> Sequence[OwnedNumber]:
        return await self._repo.list_all(status=status)

    async def get_owned_number(self, owned_number_id: UUID) -> OwnedNumber:
        owned = await self._repo.get_by_id(owned_number_id)
        if owned is None:
            raise OwnedNumberNotFoundError(
                message=f"Phone number {owned_number_id} not found",
                details={"owned_number_id": str(owned_number_id)},
            )
        return owned

    async def assign_agent(self, owned_number_id: UUID, agent_id: UUID) -> OwnedNumber:
        owned = await self.get_owned_number(owned_number_id)
        await self._repo.set_assigned_agent(owned, agent_id)
        await self._session.commit()
        logger.info(
            "Agent assigned",
            extra={"number": owned.number, "agent_id": str(agent_id)},
        )
        return owned

    async def unassign_agent(self, owned_number_id: UUID) -> OwnedNumber:
        owned = await self.get_owned_number(owned_number_id)
        await self._repo.set_assigned_agent(owned, None)
        await self._session.commit()
        logger.info("Agent unassigned", extra={"number": owned.number})
        return owned
