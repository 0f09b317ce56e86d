"""
Repository for owned phone number database operations.
"""

from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from numberops.phone_numbers.models import OwnedNumber, PhoneNumberStatus


class OwnedNumberRepository:
    """Repository for owned phone number records."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def create(
        self,
        number: str,
        country: str,
        provider_sid: str,
        capabilities: Iterable[str] = (),
        friendly_name: str | None = None,
        number_type: str = "local",
        is_test_account: bool = False,
    ) -> OwnedNumber:
        """Create a pending ownership record.

        Args:
            number: E.164 number.
            country: ISO-2 country code.
            provider_sid: Telephony provider reference id.
            capabilities: Capability names.
            friendly_name: Display label.
            number_type: local, tollFree or mobile.
            is_test_account: Bought on a sandbox account.

        Returns:
            Created OwnedNumber in ``pending`` status.
        """
        owned = OwnedNumber(
            number=number,
            country=country,
            provider_sid=provider_sid,
            capabilities=sorted(capabilities),
            friendly_name=friendly_name,
            number_type=number_type,
            is_test_account=is_test_account,
            status=PhoneNumberStatus.PENDING,
        )
        self._session.add(owned)
        await self._session.flush()
        await self._session.refresh(owned)
        return owned

    async def get_by_id(self, owned_number_id: UUID) -> OwnedNumber | None:
        stmt = select(OwnedNumber).where(OwnedNumber.id == owned_number_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_number(self, number: str) -> OwnedNumber | None:
        stmt = select(OwnedNumber).where(OwnedNumber.number == number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self, status: PhoneNumberStatus | None = None) -> Sequence[OwnedNumber]:
        stmt = select(OwnedNumber).order_by(OwnedNumber.created_at, OwnedNumber.number)
        if status is not None:
            stmt = stmt.where(OwnedNumber.status == status)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_unregistered(self) -> Sequence[OwnedNumber]:
        """Active numbers without a voice-AI registration."""
        stmt = (
            select(OwnedNumber)
            .where(
                OwnedNumber.status == PhoneNumberStatus.ACTIVE,
                OwnedNumber.voice_ai_registration_id.is_(None),
            )
            .order_by(OwnedNumber.created_at, OwnedNumber.number)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def update_status(self, owned: OwnedNumber, status: PhoneNumberStatus) -> OwnedNumber:
        owned.transition_to(status)
        await self._session.flush()
        return owned

    async def record_registration(self, owned_number_id: UUID, registration_id: str) -> bool:
        """Store a registration id only if none is set yet.

        Returns:
            True if the row was updated, False if it already had a registration
            or does not exist.
        """
        stmt = (
            update(OwnedNumber)
            .where(
                OwnedNumber.id == owned_number_id,
                OwnedNumber.voice_ai_registration_id.is_(None),
            )
            .values(voice_ai_registration_id=registration_id)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount == 1

    async def clear_registration(self, owned: OwnedNumber) -> OwnedNumber:
        owned.voice_ai_registration_id = None
        await self._session.flush()
        return owned

    async def set_assigned_agent(self, owned: OwnedNumber, agent_id: UUID | None) -> OwnedNumber:
        owned.assigned_agent_id = agent_id
        await self._session.flush()
        return owned

    async def delete(self, owned: OwnedNumber) -> None:
        await self._session.delete(owned)
        await self._session.flush()
