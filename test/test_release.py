"""
Tests for release orchestration.
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from numberops.config import Settings
from numberops.phone_numbers.locks import PurchaseLeaseRegistry
from numberops.phone_numbers.release import ReleaseState
from numberops.phone_numbers.repository import OwnedNumberRepository
from numberops.phone_numbers.service import PhoneNumberService
from numberops.shared.exceptions import (
    ConfirmationMismatchError,
    DeregistrationFailedError,
    NumberAssignedError,
    OwnedNumberNotFoundError,
    PersistenceError,
    ProviderRequestError,
)
from numberops.telephony.mock_adapter import MockTelephonyAdapter
from numberops.voice_ai.mock_adapter import MockVoiceAIAdapter


class TestReleaseConfirmation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["delete", "release", "RELEASE ", "", "Release"])
    async def test_wrong_phrase_touches_nothing(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
        voice_ai: MockVoiceAIAdapter,
        token: str,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US", register=True)

        with pytest.raises(ConfirmationMismatchError) as exc_info:
            await service.release_number(purchase.owned_number.id, token)

        assert exc_info.value.step == "confirm"
        assert exc_info.value.status_code == 400
        assert telephony.releases == []
        assert voice_ai.deregister_calls == []
        stored = await service.get_owned_number(purchase.owned_number.id)
        assert stored.voice_ai_registration_id is not None

    @pytest.mark.asyncio
    async def test_phrase_checked_before_lookup(self, service: PhoneNumberService) -> None:
        with pytest.raises(ConfirmationMismatchError):
            await service.release_number(uuid4(), "delete")

    @pytest.mark.asyncio
    async def test_unknown_number(self, service: PhoneNumberService) -> None:
        with pytest.raises(OwnedNumberNotFoundError):
            await service.release_number(uuid4(), "RELEASE")


class TestRelease:
    @pytest.mark.asyncio
    async def test_release_unregistered_number(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
        voice_ai: MockVoiceAIAdapter,
        db_session: AsyncSession,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US")
        sid = purchase.owned_number.provider_sid

        result = await service.release_number(purchase.owned_number.id, "RELEASE")

        assert result.state == ReleaseState.DELETED
        assert result.history == [
            ReleaseState.IDLE,
            ReleaseState.CONFIRMED,
            ReleaseState.RELEASING,
            ReleaseState.RELEASED,
            ReleaseState.DELETED,
        ]
        assert result.is_simulated is False
        assert result.voice_ai_deregistered is None
        assert telephony.releases == [sid]
        assert voice_ai.deregister_calls == []
        assert await OwnedNumberRepository(db_session).get_by_number("+15551234567") is None

    @pytest.mark.asyncio
    async def test_released_number_can_be_bought_again(self, service: PhoneNumberService) -> None:
        purchase = await service.purchase_number("+15551234567", "US")
        await service.release_number(purchase.owned_number.id, "RELEASE")

        again = await service.purchase_number("+15551234567", "US")

        assert again.owned_number.id != purchase.owned_number.id

    @pytest.mark.asyncio
    async def test_release_registered_number_deregisters_first(
        self,
        service: PhoneNumberService,
        voice_ai: MockVoiceAIAdapter,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US", register=True)
        registration_id = purchase.owned_number.voice_ai_registration_id

        result = await service.release_number(purchase.owned_number.id, "RELEASE")

        assert result.voice_ai_deregistered is True
        assert ReleaseState.DEREGISTERING in result.history
        assert voice_ai.deregister_calls == [registration_id]
        assert voice_ai.registrations == {}

    @pytest.mark.asyncio
    async def test_deregistration_failure_does_not_block_release(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
        voice_ai: MockVoiceAIAdapter,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US", register=True)
        voice_ai.configure_deregister_failure(
            DeregistrationFailedError(message="voice-AI provider down", step="deregister")
        )

        result = await service.release_number(purchase.owned_number.id, "RELEASE")

        assert result.state == ReleaseState.DELETED
        assert result.voice_ai_deregistered is False
        assert any("deregistration failed" in w for w in result.warnings)
        assert len(telephony.releases) == 1

    @pytest.mark.asyncio
    async def test_sandbox_release_is_simulated(
        self,
        db_session: AsyncSession,
        sandbox_telephony: MockTelephonyAdapter,
        voice_ai: MockVoiceAIAdapter,
        test_settings: Settings,
    ) -> None:
        service = PhoneNumberService(
            session=db_session,
            telephony=sandbox_telephony,
            voice_ai=voice_ai,
            leases=PurchaseLeaseRegistry(60),
            settings=test_settings,
        )
        purchase = await service.purchase_number("+15551234567", "US")

        result = await service.release_number(purchase.owned_number.id, "RELEASE")

        assert result.is_simulated is True
        assert result.state == ReleaseState.DELETED
        assert any("simulated" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_number_already_gone_on_provider(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US")
        await telephony.release_number(purchase.owned_number.provider_sid)

        result = await service.release_number(purchase.owned_number.id, "RELEASE")

        assert result.already_released is True
        assert result.state == ReleaseState.DELETED

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_record(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
        voice_ai: MockVoiceAIAdapter,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US", register=True)
        telephony.configure_failure(
            "release", ProviderRequestError(message="provider exploded", step="release")
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            await service.release_number(purchase.owned_number.id, "RELEASE")

        # Deregistration already happened, so state was mutated.
        assert exc_info.value.state_mutated is True
        assert exc_info.value.step == "release"
        stored = await service.get_owned_number(purchase.owned_number.id)
        assert stored.voice_ai_registration_id is None
        assert voice_ai.registrations == {}

    @pytest.mark.asyncio
    async def test_record_update_failure_after_deregistration(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
        voice_ai: MockVoiceAIAdapter,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US", register=True)
        owned_id = purchase.owned_number.id
        registration_id = purchase.owned_number.voice_ai_registration_id

        async def broken_clear(self, owned):
            raise SQLAlchemyError("database unavailable")

        monkeypatch.setattr(OwnedNumberRepository, "clear_registration", broken_clear)

        with pytest.raises(PersistenceError) as exc_info:
            await service.release_number(owned_id, "RELEASE")

        error = exc_info.value
        assert error.step == "deregister"
        assert error.state_mutated is True
        assert error.details["registration_id"] == registration_id
        assert voice_ai.deregister_calls == [registration_id]
        assert telephony.releases == []
        assert (await service.get_owned_number(owned_id)).number == "+15551234567"

class TestReleaseAssigned:
    @pytest.mark.asyncio
    async def test_assigned_number_is_blocked(
        self,
        service: PhoneNumberService,
        telephony: MockTelephonyAdapter,
    ) -> None:
        purchase = await service.purchase_number("+15551234567", "US")
        await service.assign_agent(purchase.owned_number.id, uuid4())

        with pytest.raises(NumberAssignedError) as exc_info:
            await service.release_number(purchase.owned_number.id, "RELEASE")

        assert exc_info.value.step == "precheck"
        assert telephony.releases == []

    @pytest.mark.asyncio
    async def test_force_unassign(self, service: PhoneNumberService) -> None:
        purchase = await service.purchase_number("+15551234567", "US")
        await service.assign_agent(purchase.owned_number.id, uuid4())

        result = await service.release_number(
            purchase.owned_number.id, "RELEASE", force_unassign=True
        )

        assert result.state == ReleaseState.DELETED
