"""
Per-number purchase leases.

A lease is taken before a purchase reaches the provider and dropped when
the purchase finishes. A lease whose holder never finished expires after
``lease_seconds`` so the number does not stay blocked forever.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
import time
from uuid import uuid4

from numberops.shared.exceptions import PurchaseInProgressError
from numberops.shared.logging import get_logger

logger = get_logger(__name__)


class PurchaseLeaseRegistry:
    """Process-wide registry of in-flight purchases keyed by number."""

    def __init__(
        self,
        lease_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lease_seconds = lease_seconds
        self._clock = clock
        self._leases: dict[str, tuple[str, float]] = {}

    def is_held(self, number: str) -> bool:
        lease = self._leases.get(number)
        return lease is not None and lease[1] > self._clock()

    def try_acquire(self, number: str) -> str | None:
        """Take the lease for ``number``. Returns a holder token, or None if held."""
        now = self._clock()
        lease = self._leases.get(number)
        if lease is not None and lease[1] > now:
            return None
        if lease is not None:
            logger.warning("Expired purchase lease taken over", extra={"number": number})
        token = uuid4().hex
        self._leases[number] = (token, now + self._lease_seconds)
        return token

    def release(self, number: str, token: str) -> None:
        """Drop the lease if ``token`` still holds it."""
        lease = self._leases.get(number)
        if lease is not None and lease[0] == token:
            del self._leases[number]

    @asynccontextmanager
    async def lease(self, number: str) -> AsyncGenerator[str, None]:
        token = self.try_acquire(number)
        if token is None:
            raise PurchaseInProgressError(
                message=f"A purchase of {number} is already in progress",
                step="reserve",
                details={"number": number},
            )
        try:
            yield token
        finally:
            self.release(number, token)
