"""
Purchase orchestration.

States: idle -> reserving -> purchased -> [registering] -> done, with
``failed`` reachable from reserving and purchased, and
``purchased_unregistered`` when registration fails after a successful
purchase. A failed registration never undoes the purchase.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from numberops.config import Settings, get_settings
from numberops.phone_numbers.locks import PurchaseLeaseRegistry
from numberops.phone_numbers.models import OwnedNumber, PhoneNumberStatus
from numberops.phone_numbers.repository import OwnedNumberRepository
from numberops.phone_numbers.state import LifecycleStateMachine
from numberops.shared.exceptions import (
    AppException,
    NumberAlreadyOwnedError,
    PersistenceError,
    ProviderTimeoutError,
)
from numberops.shared.logging import get_logger
from numberops.shared.timeouts import bounded_call
from numberops.telephony.interface import PurchasedNumber, TelephonyProvider
from numberops.voice_ai.interface import VoiceAIProvider

logger = get_logger(__name__)


class ProvisioningState(str, Enum):
    IDLE = "idle"
    RESERVING = "reserving"
    PURCHASED = "purchased"
    REGISTERING = "registering"
    DONE = "done"
    PURCHASED_UNREGISTERED = "purchased_unregistered"
    FAILED = "failed"


PROVISIONING_TRANSITIONS: dict[ProvisioningState, frozenset[ProvisioningState]] = {
    ProvisioningState.IDLE: frozenset({ProvisioningState.RESERVING}),
    ProvisioningState.RESERVING: frozenset({ProvisioningState.PURCHASED, ProvisioningState.FAILED}),
    ProvisioningState.PURCHASED: frozenset(
        {ProvisioningState.REGISTERING, ProvisioningState.DONE, ProvisioningState.FAILED}
    ),
    ProvisioningState.REGISTERING: frozenset(
        {ProvisioningState.DONE, ProvisioningState.PURCHASED_UNREGISTERED}
    ),
    ProvisioningState.DONE: frozenset(),
    ProvisioningState.PURCHASED_UNREGISTERED: frozenset(),
    ProvisioningState.FAILED: frozenset(),
}


@dataclass
class PurchaseResult:
    owned_number: OwnedNumber
    state: ProvisioningState
    history: list[ProvisioningState]
    registration_error: dict[str, Any] | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_registered(self) -> bool:
        return self.owned_number.voice_ai_registration_id is not None


class ProvisioningOrchestrator:
    """Buys a number, records ownership and optionally registers it."""

    def __init__(
        self,
        session: AsyncSession,
        telephony: TelephonyProvider,
        voice_ai: VoiceAIProvider,
        leases: PurchaseLeaseRegistry,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._repo = OwnedNumberRepository(session)
        self._telephony = telephony
        self._voice_ai = voice_ai
        self._leases = leases
        self._settings = settings or get_settings()

    async def purchase(
        self,
        number: str,
        country: str,
        register: bool | None = None,
    ) -> PurchaseResult:
        """Purchase ``number``.

        Args:
            number: E.164 number picked from a search result.
            country: ISO-2 country code of the number.
            register: Register with the voice-AI provider after purchase.
                Defaults to the ``register_on_purchase`` setting.

        Raises:
            PurchaseInProgressError: Another purchase of the number is in flight.
            NumberAlreadyOwnedError: The number is already recorded as owned.
            ProviderError: The telephony provider rejected the purchase.
            PersistenceError: The number was bought but could not be recorded.
        """
        number = number.strip()
        country = country.strip().upper()
        machine = LifecycleStateMachine("purchase", ProvisioningState.IDLE, PROVISIONING_TRANSITIONS)

        async with self._leases.lease(number):
            machine.advance(ProvisioningState.RESERVING)
            logger.info("Purchase started", extra={"number": number, "country": country})

            if await self._repo.get_by_number(number) is not None:
                machine.advance(ProvisioningState.FAILED)
                raise NumberAlreadyOwnedError(
                    message=f"Number {number} is already owned",
                    step="reserve",
                    details={"number": number},
                )

            try:
                purchased = await bounded_call(
                    "purchase",
                    self._telephony.purchase_number,
                    number,
                    country,
                    timeout=self._settings.provider_timeout_seconds,
                )
            except AppException as e:
                machine.advance(ProvisioningState.FAILED)
                e.step = e.step or "purchase"
                if isinstance(e, ProviderTimeoutError) or e.details.get("outcome_unknown"):
                    # The provider may have completed the purchase after we stopped waiting.
                    e.state_mutated = True
                    e.details["outcome_unknown"] = True
                    logger.error(
                        "Purchase outcome unknown; reconcile with provider",
                        extra={"number": number, "country": country, "error_code": e.code},
                    )
                else:
                    logger.warning(
                        "Purchase rejected by provider",
                        extra={"number": number, "error_code": e.code},
                    )
                raise

            machine.advance(ProvisioningState.PURCHASED)
            owned = await self._persist(purchased, country, machine)
            owned_id = owned.id

        should_register = self._settings.register_on_purchase if register is None else register
        result = PurchaseResult(owned_number=owned, state=machine.state, history=machine.history)
        if purchased.is_test_account:
            result.warnings.append("Purchased on a test account; the number cannot take real calls.")

        if not should_register:
            machine.advance(ProvisioningState.DONE)
            result.state = machine.state
            logger.info(
                "Purchase completed",
                extra={"number": number, "owned_number_id": str(owned.id), "registered": False},
            )
            return result

        machine.advance(ProvisioningState.REGISTERING)
        error = await self._register(owned)
        if error is None:
            machine.advance(ProvisioningState.DONE)
        else:
            machine.advance(ProvisioningState.PURCHASED_UNREGISTERED)
            result.registration_error = error.to_dict()
            result.warnings.append(
                "Number purchased but not registered with the voice-AI provider; run a sync to retry."
            )
        result.state = machine.state

        logger.info(
            "Purchase completed",
            extra={
                "number": number,
                "owned_number_id": str(owned_id),
                "registered": error is None,
                "state": result.state.value,
            },
        )
        return result

    async def _persist(
        self,
        purchased: PurchasedNumber,
        country: str,
        machine: LifecycleStateMachine[ProvisioningState],
    ) -> OwnedNumber:
        try:
            owned = await self._repo.create(
                number=purchased.number,
                country=purchased.country or country,
                provider_sid=purchased.sid,
                capabilities=[c.value for c in purchased.capabilities],
                friendly_name=purchased.friendly_name,
                is_test_account=purchased.is_test_account,
            )
            await self._repo.update_status(owned, PhoneNumberStatus.ACTIVE)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            machine.advance(ProvisioningState.FAILED)
            compensated = await self._compensate(purchased)
            raise PersistenceError(
                message=f"Number {purchased.number} was purchased but could not be recorded",
                step="persist",
                state_mutated=not compensated,
                details={"provider_sid": purchased.sid, "compensated": compensated},
            ) from e
        return owned

    async def _compensate(self, purchased: PurchasedNumber) -> bool:
        """Release a number whose ownership could not be recorded."""
        try:
            await bounded_call(
                "compensate",
                self._telephony.release_number,
                purchased.sid,
                timeout=self._settings.provider_timeout_seconds,
            )
        except AppException:
            logger.exception(
                "Compensating release failed; number is orphaned on the provider",
                extra={"number": purchased.number, "provider_sid": purchased.sid},
            )
            return False
        logger.warning(
            "Purchased number released after persistence failure",
            extra={"number": purchased.number, "provider_sid": purchased.sid},
        )
        return True

    async def _register(self, owned: OwnedNumber) -> AppException | None:
        """Register ``owned`` with the voice-AI provider. Returns the error on failure."""
        try:
            registration = await bounded_call(
                "register",
                self._voice_ai.register_phone_number,
                owned.number,
                owned.provider_sid,
                owned.friendly_name,
                timeout=self._settings.provider_timeout_seconds,
            )
        except AppException as e:
            logger.warning(
                "Voice-AI registration failed after purchase",
                extra={"number": owned.number, "error_code": e.code},
            )
            return e

        try:
            await self._repo.record_registration(owned.id, registration.registration_id)
            await self._session.commit()
            await self._session.refresh(owned)
        except SQLAlchemyError:
            await self._session.rollback()
            logger.exception(
                "Could not store voice-AI registration",
                extra={"number": owned.number, "registration_id": registration.registration_id},
            )
            return PersistenceError(
                message="Registration succeeded but could not be recorded",
                step="register",
                state_mutated=True,
                details={"registration_id": registration.registration_id},
            )
        return None
