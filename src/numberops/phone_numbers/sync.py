"""
Reconciliation of owned numbers with the voice-AI provider.

A number is synced once it holds a registration id. Syncing a synced
number is a no-op that makes no provider call.
"""

from dataclasses import dataclass, field
from uuid import UUID

import anyio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from numberops.config import Settings, get_settings
from numberops.phone_numbers.models import OwnedNumber, PhoneNumberStatus
from numberops.phone_numbers.repository import OwnedNumberRepository
from numberops.shared.exceptions import (
    AppException,
    InvalidStatusTransitionError,
    OwnedNumberNotFoundError,
)
from numberops.shared.logging import get_logger
from numberops.shared.timeouts import bounded_call
from numberops.voice_ai.interface import VoiceAIProvider

logger = get_logger(__name__)


@dataclass
class SyncResult:
    owned_number_id: UUID
    number: str
    success: bool
    registration_id: str | None = None
    skipped: bool = False
    error_code: str | None = None
    error_message: str | None = None


@dataclass
class SyncSummary:
    results: list[SyncResult] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if r.success and not r.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def message(self) -> str:
        if not self.results:
            return "All numbers are already synced"
        return f"Synced {self.synced} of {len(self.results)} numbers ({self.failed} failed)"


class SyncReconciler:
    """Registers owned numbers that lack a voice-AI registration."""

    def __init__(
        self,
        session: AsyncSession,
        voice_ai: VoiceAIProvider,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._repo = OwnedNumberRepository(session)
        self._voice_ai = voice_ai
        self._settings = settings or get_settings()
        self._write_lock = anyio.Lock()

    async def sync_one(self, owned_number_id: UUID) -> SyncResult:
        owned = await self._repo.get_by_id(owned_number_id)
        if owned is None:
            raise OwnedNumberNotFoundError(
                message=f"Phone number {owned_number_id} not found",
                step="lookup",
                details={"owned_number_id": str(owned_number_id)},
            )
        if owned.status != PhoneNumberStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                message=f"Phone number {owned.number} is {owned.status.value} and cannot be synced",
                step="lookup",
                details={"owned_number_id": str(owned.id), "status": owned.status.value},
            )
        return await self._sync(owned)

    async def sync_all(self) -> SyncSummary:
        """Sync every unregistered number with bounded concurrency.

        One number failing never stops the others; results keep the order
        of the candidate list.
        """
        candidates = list(await self._repo.list_unregistered())
        results: list[SyncResult | None] = [None] * len(candidates)
        limiter = anyio.CapacityLimiter(self._settings.sync_max_concurrency)

        async def run(index: int, owned: OwnedNumber) -> None:
            owned_id = owned.id
            number = owned.number
            async with limiter:
                try:
                    results[index] = await self._sync(owned)
                except Exception as e:
                    logger.exception("Unexpected sync failure", extra={"number": number})
                    results[index] = SyncResult(
                        owned_number_id=owned_id,
                        number=number,
                        success=False,
                        error_code="UNEXPECTED_ERROR",
                        error_message=str(e),
                    )

        logger.info("Bulk sync started", extra={"candidates": len(candidates)})
        async with anyio.create_task_group() as tg:
            for index, owned in enumerate(candidates):
                tg.start_soon(run, index, owned)

        summary = SyncSummary(results=[r for r in results if r is not None])
        logger.info(
            "Bulk sync finished",
            extra={"synced": summary.synced, "failed": summary.failed, "skipped": summary.skipped},
        )
        return summary

    async def _sync(self, owned: OwnedNumber) -> SyncResult:
        owned_id = owned.id
        number = owned.number

        if owned.voice_ai_registration_id is not None:
            return SyncResult(
                owned_number_id=owned_id,
                number=number,
                success=True,
                skipped=True,
                registration_id=owned.voice_ai_registration_id,
            )

        try:
            registration = await bounded_call(
                "register",
                self._voice_ai.register_phone_number,
                number,
                owned.provider_sid,
                owned.friendly_name,
                timeout=self._settings.provider_timeout_seconds,
            )
        except AppException as e:
            logger.warning("Sync registration failed", extra={"number": number, "error_code": e.code})
            return SyncResult(
                owned_number_id=owned_id,
                number=number,
                success=False,
                error_code=e.code,
                error_message=e.message,
            )

        async with self._write_lock:
            try:
                stored = await self._repo.record_registration(owned_id, registration.registration_id)
                await self._session.commit()
                await self._session.refresh(owned)
            except SQLAlchemyError as e:
                await self._session.rollback()
                logger.exception("Could not store registration", extra={"number": number})
                await self._discard_registration(registration.registration_id, number)
                return SyncResult(
                    owned_number_id=owned_id,
                    number=number,
                    success=False,
                    error_code="PERSISTENCE_ERROR",
                    error_message=str(e),
                )

        if not stored:
            # Someone else registered it first; drop the duplicate.
            await self._discard_registration(registration.registration_id, number)
            return SyncResult(
                owned_number_id=owned_id,
                number=number,
                success=True,
                skipped=True,
                registration_id=owned.voice_ai_registration_id,
            )

        logger.info(
            "Number synced",
            extra={"number": number, "registration_id": registration.registration_id},
        )
        return SyncResult(
            owned_number_id=owned_id,
            number=number,
            success=True,
            registration_id=registration.registration_id,
        )

    async def _discard_registration(self, registration_id: str, number: str) -> None:
        try:
            await bounded_call(
                "deregister",
                self._voice_ai.deregister_phone_number,
                registration_id,
                timeout=self._settings.provider_timeout_seconds,
            )
        except AppException as e:
            logger.warning(
                "Orphaned voice-AI registration",
                extra={"number": number, "registration_id": registration_id, "error_code": e.code},
            )
