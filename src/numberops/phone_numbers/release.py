"""
Release orchestration.

States: idle -> confirmed -> [deregistering] -> releasing -> released
-> deleted, with ``failed`` reachable from deregistering, releasing and
released. Nothing is touched until the caller has typed the confirmation
phrase exactly.
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from numberops.config import Settings, get_settings
from numberops.phone_numbers.models import OwnedNumber, PhoneNumberStatus
from numberops.phone_numbers.repository import OwnedNumberRepository
from numberops.phone_numbers.state import LifecycleStateMachine
from numberops.shared.exceptions import (
    AppException,
    ConfirmationMismatchError,
    InvalidStatusTransitionError,
    NumberAssignedError,
    OwnedNumberNotFoundError,
    PersistenceError,
)
from numberops.shared.logging import get_logger
from numberops.shared.timeouts import bounded_call
from numberops.telephony.interface import TelephonyProvider
from numberops.voice_ai.interface import VoiceAIProvider

logger = get_logger(__name__)


class ReleaseState(str, Enum):
    IDLE = "idle"
    CONFIRMED = "confirmed"
    DEREGISTERING = "deregistering"
    RELEASING = "releasing"
    RELEASED = "released"
    DELETED = "deleted"
    FAILED = "failed"


RELEASE_TRANSITIONS: dict[ReleaseState, frozenset[ReleaseState]] = {
    ReleaseState.IDLE: frozenset({ReleaseState.CONFIRMED}),
    ReleaseState.CONFIRMED: frozenset({ReleaseState.DEREGISTERING, ReleaseState.RELEASING}),
    ReleaseState.DEREGISTERING: frozenset({ReleaseState.RELEASING, ReleaseState.FAILED}),
    ReleaseState.RELEASING: frozenset({ReleaseState.RELEASED, ReleaseState.FAILED}),
    ReleaseState.RELEASED: frozenset({ReleaseState.DELETED, ReleaseState.FAILED}),
    ReleaseState.DELETED: frozenset(),
    ReleaseState.FAILED: frozenset(),
}


@dataclass
class ReleaseResult:
    owned_number_id: UUID
    number: str
    provider_sid: str
    state: ReleaseState
    history: list[ReleaseState]
    is_simulated: bool = False
    already_released: bool = False
    # None when the number had no voice-AI registration.
    voice_ai_deregistered: bool | None = None
    warnings: list[str] = field(default_factory=list)


class ReleaseOrchestrator:
    """Deregisters, releases and deletes an owned number."""

    def __init__(
        self,
        session: AsyncSession,
        telephony: TelephonyProvider,
        voice_ai: VoiceAIProvider,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._repo = OwnedNumberRepository(session)
        self._telephony = telephony
        self._voice_ai = voice_ai
        self._settings = settings or get_settings()

    async def release(
        self,
        owned_number_id: UUID,
        confirmation_token: str,
        force_unassign: bool = False,
    ) -> ReleaseResult:
        """Release an owned number.

        Args:
            owned_number_id: Ownership record id.
            confirmation_token: Must equal the configured confirmation phrase.
            force_unassign: Detach an assigned agent instead of refusing.

        Raises:
            ConfirmationMismatchError: The confirmation text does not match.
            OwnedNumberNotFoundError: No such ownership record.
            NumberAssignedError: The number is assigned and ``force_unassign`` is False.
            ProviderError: The telephony provider refused the release.
            PersistenceError: A record update after a provider-side change failed.
        """
        phrase = self._settings.release_confirmation_phrase
        if confirmation_token != phrase:
            raise ConfirmationMismatchError(
                message=f'Type "{phrase}" exactly to confirm the release',
                step="confirm",
            )

        machine = LifecycleStateMachine("release", ReleaseState.IDLE, RELEASE_TRANSITIONS)
        machine.advance(ReleaseState.CONFIRMED)

        owned = await self._repo.get_by_id(owned_number_id)
        if owned is None:
            raise OwnedNumberNotFoundError(
                message=f"Phone number {owned_number_id} not found",
                step="lookup",
                details={"owned_number_id": str(owned_number_id)},
            )
        if owned.status != PhoneNumberStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                message=f"Phone number {owned.number} is {owned.status.value} and cannot be released",
                step="lookup",
                details={"owned_number_id": str(owned.id), "status": owned.status.value},
            )

        number = owned.number
        provider_sid = owned.provider_sid
        mutated = False

        if owned.assigned_agent_id is not None:
            if not force_unassign:
                raise NumberAssignedError(
                    message=f"Phone number {number} is assigned to an agent",
                    step="precheck",
                    details={"assigned_agent_id": str(owned.assigned_agent_id)},
                )
            await self._repo.set_assigned_agent(owned, None)
            await self._session.commit()
            mutated = True
            logger.info("Agent detached before release", extra={"number": number})

        result = ReleaseResult(
            owned_number_id=owned_number_id,
            number=number,
            provider_sid=provider_sid,
            state=machine.state,
            history=machine.history,
        )

        registration_id = owned.voice_ai_registration_id
        if registration_id is not None:
            machine.advance(ReleaseState.DEREGISTERING)
            try:
                result.voice_ai_deregistered = await self._deregister(owned, registration_id, result)
            except PersistenceError:
                machine.advance(ReleaseState.FAILED)
                raise
            mutated = mutated or result.voice_ai_deregistered

        machine.advance(ReleaseState.RELEASING)
        try:
            outcome = await bounded_call(
                "release",
                self._telephony.release_number,
                provider_sid,
                timeout=self._settings.provider_timeout_seconds,
            )
        except AppException as e:
            machine.advance(ReleaseState.FAILED)
            e.step = e.step or "release"
            e.state_mutated = e.state_mutated or mutated
            e.details.setdefault("owned_number_id", str(owned_number_id))
            logger.warning(
                "Release rejected by provider",
                extra={"number": number, "error_code": e.code},
            )
            raise

        machine.advance(ReleaseState.RELEASED)
        result.is_simulated = outcome.is_simulated
        result.already_released = outcome.already_released
        if outcome.is_simulated:
            result.warnings.append("Test account: the release was simulated and the number was not freed.")
        if outcome.already_released:
            result.warnings.append("The provider no longer held this number.")

        try:
            await self._repo.update_status(owned, PhoneNumberStatus.INACTIVE)
            await self._repo.delete(owned)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            machine.advance(ReleaseState.FAILED)
            raise PersistenceError(
                message=f"Number {number} was released but its record could not be deleted",
                step="delete",
                state_mutated=True,
                details={
                    "owned_number_id": str(owned_number_id),
                    "provider_sid": provider_sid,
                    "is_simulated": outcome.is_simulated,
                },
            ) from e

        machine.advance(ReleaseState.DELETED)
        result.state = machine.state
        logger.info(
            "Phone number released",
            extra={
                "number": number,
                "owned_number_id": str(owned_number_id),
                "is_simulated": result.is_simulated,
                "voice_ai_deregistered": result.voice_ai_deregistered,
            },
        )
        return result

    async def _deregister(
        self,
        owned: OwnedNumber,
        registration_id: str,
        result: ReleaseResult,
    ) -> bool:
        try:
            await bounded_call(
                "deregister",
                self._voice_ai.deregister_phone_number,
                registration_id,
                timeout=self._settings.provider_timeout_seconds,
            )
        except AppException as e:
            logger.warning(
                "Voice-AI deregistration failed; continuing release",
                extra={"number": result.number, "registration_id": registration_id, "error_code": e.code},
            )
            result.warnings.append(f"Voice-AI deregistration failed: {e.message}")
            return False

        # The registration is gone; keep the record truthful if the release below fails.
        try:
            await self._repo.clear_registration(owned)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(
                "Could not clear voice-AI registration",
                extra={"number": result.number, "registration_id": registration_id},
            )
            raise PersistenceError(
                message=f"Number {result.number} was deregistered but its record could not be updated",
                step="deregister",
                state_mutated=True,
                details={
                    "owned_number_id": str(result.owned_number_id),
                    "registration_id": registration_id,
                },
            ) from e
        return True
