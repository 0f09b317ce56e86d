"""
Tests for per-number purchase leases.
"""

import pytest

from numberops.phone_numbers.locks import PurchaseLeaseRegistry
from numberops.shared.exceptions import PurchaseInProgressError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestPurchaseLeaseRegistry:
    def test_second_acquire_is_refused(self) -> None:
        registry = PurchaseLeaseRegistry(lease_seconds=30)

        token = registry.try_acquire("+15551234567")

        assert token is not None
        assert registry.try_acquire("+15551234567") is None
        assert registry.is_held("+15551234567")

    def test_leases_are_per_number(self) -> None:
        registry = PurchaseLeaseRegistry(lease_seconds=30)

        assert registry.try_acquire("+15551234567") is not None
        assert registry.try_acquire("+15557654321") is not None

    def test_release_frees_number(self) -> None:
        registry = PurchaseLeaseRegistry(lease_seconds=30)
        token = registry.try_acquire("+15551234567")

        registry.release("+15551234567", token)

        assert not registry.is_held("+15551234567")
        assert registry.try_acquire("+15551234567") is not None

    def test_expired_lease_can_be_taken_over(self) -> None:
        clock = FakeClock()
        registry = PurchaseLeaseRegistry(lease_seconds=30, clock=clock)
        registry.try_acquire("+15551234567")

        clock.now += 31

        assert not registry.is_held("+15551234567")
        assert registry.try_acquire("+15551234567") is not None

    def test_stale_holder_cannot_release_new_lease(self) -> None:
        clock = FakeClock()
        registry = PurchaseLeaseRegistry(lease_seconds=30, clock=clock)
        old_token = registry.try_acquire("+15551234567")
        clock.now += 31
        registry.try_acquire("+15551234567")

        registry.release("+15551234567", old_token)

        assert registry.is_held("+15551234567")

    @pytest.mark.asyncio
    async def test_lease_context_raises_when_held(self) -> None:
        registry = PurchaseLeaseRegistry(lease_seconds=30)

        async with registry.lease("+15551234567"):
            with pytest.raises(PurchaseInProgressError) as exc_info:
                async with registry.lease("+15551234567"):
                    pass

        assert exc_info.value.step == "reserve"
        assert exc_info.value.state_mutated is False
        assert not registry.is_held("+15551234567")

    @pytest.mark.asyncio
    async def test_lease_released_on_error(self) -> None:
        registry = PurchaseLeaseRegistry(lease_seconds=30)

        with pytest.raises(RuntimeError):
            async with registry.lease("+15551234567"):
                raise RuntimeError("purchase blew up")

        assert not registry.is_held("+15551234567")
