"""
Tests for the in-memory provider adapters.
"""

from decimal import Decimal

import pytest

from numberops.shared.exceptions import (
    CountryUnsupportedError,
    DeregistrationFailedError,
    NumberUnavailableError,
    ProviderConnectionError,
    RegistrationFailedError,
)
from numberops.telephony.interface import Capability, NumberSearchQuery, NumberType
from numberops.telephony.mock_adapter import MAGIC_SUCCESS_NUMBER, MockTelephonyAdapter
from numberops.voice_ai.mock_adapter import MockVoiceAIAdapter


class TestMockTelephonySearch:
    @pytest.mark.asyncio
    async def test_search_by_country(self) -> None:
        adapter = MockTelephonyAdapter()

        numbers = await adapter.search_available_numbers(NumberSearchQuery(country="US"))

        assert {n.number for n in numbers} == {"+15551234567", "+15557654321", "+14155550123"}
        assert adapter.searches[0].country == "US"

    @pytest.mark.asyncio
    async def test_capability_filter(self) -> None:
        adapter = MockTelephonyAdapter()

        numbers = await adapter.search_available_numbers(
            NumberSearchQuery(country="US", in_region="FL", capabilities=frozenset({Capability.SMS}))
        )

        assert [n.number for n in numbers] == ["+15551234567"]

    @pytest.mark.asyncio
    async def test_toll_free(self) -> None:
        adapter = MockTelephonyAdapter()

        numbers = await adapter.search_available_numbers(
            NumberSearchQuery(country="US", number_type=NumberType.TOLL_FREE)
        )

        assert [n.number for n in numbers] == ["+18005550100"]

    @pytest.mark.asyncio
    async def test_limit(self) -> None:
        adapter = MockTelephonyAdapter()

        numbers = await adapter.search_available_numbers(NumberSearchQuery(country="US", limit=1))

        assert len(numbers) == 1

    @pytest.mark.asyncio
    async def test_unsupported_country(self) -> None:
        adapter = MockTelephonyAdapter()

        with pytest.raises(CountryUnsupportedError):
            await adapter.search_available_numbers(NumberSearchQuery(country="XX"))

    @pytest.mark.asyncio
    async def test_sandbox_lists_magic_numbers(self) -> None:
        adapter = MockTelephonyAdapter(is_sandbox=True)

        numbers = await adapter.search_available_numbers(NumberSearchQuery(country="US", in_locality="Test"))

        assert MAGIC_SUCCESS_NUMBER in {n.number for n in numbers}
        assert all(n.is_magic_number and n.is_test_account for n in numbers)


class TestMockTelephonyPurchaseRelease:
    @pytest.mark.asyncio
    async def test_purchase_removes_from_inventory(self) -> None:
        adapter = MockTelephonyAdapter()

        purchased = await adapter.purchase_number("+15551234567", "US")

        assert purchased.sid in adapter.owned_sids
        with pytest.raises(NumberUnavailableError):
            await adapter.purchase_number("+15551234567", "US")

    @pytest.mark.asyncio
    async def test_magic_numbers_only_fail_in_sandbox(self) -> None:
        adapter = MockTelephonyAdapter()

        # Outside sandbox the magic number is simply not in the inventory.
        with pytest.raises(NumberUnavailableError) as exc_info:
            await adapter.purchase_number("+15005550001", "US")

        assert exc_info.value.details["provider_code"] == 21422

    @pytest.mark.asyncio
    async def test_release_returns_number_to_inventory(self) -> None:
        adapter = MockTelephonyAdapter()
        purchased = await adapter.purchase_number("+15551234567", "US")

        outcome = await adapter.release_number(purchased.sid)

        assert outcome.is_simulated is False
        assert adapter.owned_sids == []
        again = await adapter.purchase_number("+15551234567", "US")
        assert again.sid != purchased.sid

    @pytest.mark.asyncio
    async def test_release_unknown_sid(self) -> None:
        outcome = await MockTelephonyAdapter().release_number("PN_UNKNOWN")

        assert outcome.already_released is True

    @pytest.mark.asyncio
    async def test_sandbox_release_is_simulated(self) -> None:
        adapter = MockTelephonyAdapter(is_sandbox=True)
        purchased = await adapter.purchase_number(MAGIC_SUCCESS_NUMBER, "US")

        outcome = await adapter.release_number(purchased.sid)

        assert outcome.is_simulated is True
        assert purchased.sid in adapter.owned_sids

    @pytest.mark.asyncio
    async def test_configured_failure(self) -> None:
        adapter = MockTelephonyAdapter()
        adapter.configure_failure("purchase", ProviderConnectionError(message="down", step="purchase"))

        with pytest.raises(ProviderConnectionError):
            await adapter.purchase_number("+15551234567", "US")

        adapter.configure_failure("purchase", None)
        await adapter.purchase_number("+15551234567", "US")


class TestMockVoiceAI:
    @pytest.mark.asyncio
    async def test_register_and_deregister(self) -> None:
        adapter = MockVoiceAIAdapter()

        registration = await adapter.register_phone_number("+15551234567", "PN1")

        assert registration.registration_id.startswith("phnum_")
        assert adapter.registrations == {registration.registration_id: "+15551234567"}

        await adapter.deregister_phone_number(registration.registration_id)
        assert adapter.registrations == {}

    @pytest.mark.asyncio
    async def test_deregister_unknown(self) -> None:
        with pytest.raises(DeregistrationFailedError):
            await MockVoiceAIAdapter().deregister_phone_number("phnum_missing")

    @pytest.mark.asyncio
    async def test_reset_clears_failures(self) -> None:
        adapter = MockVoiceAIAdapter()
        adapter.fail_registration_for("+15551234567")

        with pytest.raises(RegistrationFailedError):
            await adapter.register_phone_number("+15551234567", "PN1")

        adapter.reset()

        assert adapter.register_calls == []
        await adapter.register_phone_number("+15551234567", "PN1")


class TestMockTelephonyReset:
    @pytest.mark.asyncio
    async def test_reset_clears_failures_and_calls(self) -> None:
        adapter = MockTelephonyAdapter()
        adapter.configure_failure("search", ProviderConnectionError(message="down", step="search"))

        with pytest.raises(ProviderConnectionError):
            await adapter.search_available_numbers(NumberSearchQuery(country="US"))

        adapter.reset()

        assert adapter.searches == []
        assert await adapter.search_available_numbers(NumberSearchQuery(country="US"))


class TestMockTelephonyCountries:
    @pytest.mark.asyncio
    async def test_list_countries(self) -> None:
        countries = await MockTelephonyAdapter(supported_countries=frozenset({"US", "GB"})).list_available_countries()

        assert [(c.code, c.name) for c in countries] == [("GB", "United Kingdom"), ("US", "United States")]

    @pytest.mark.asyncio
    async def test_pricing(self) -> None:
        pricing = await MockTelephonyAdapter().get_country_pricing("us")

        assert pricing.country == "US"
        assert pricing.monthly_price(NumberType.TOLL_FREE) == Decimal("2.15")
        assert pricing.price_unit == "USD"

    @pytest.mark.asyncio
    async def test_pricing_unsupported_country(self) -> None:
        with pytest.raises(CountryUnsupportedError) as exc_info:
            await MockTelephonyAdapter().get_country_pricing("XX")

        assert exc_info.value.step == "pricing"
