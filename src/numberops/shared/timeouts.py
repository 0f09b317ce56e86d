"""
Deadline helper for calls that leave the process.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio

from numberops.shared.exceptions import ProviderTimeoutError

T = TypeVar("T")


async def bounded_call(
    step: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    timeout: float,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` and fail with ProviderTimeoutError after ``timeout``."""
    try:
        with anyio.fail_after(timeout):
            return await func(*args, **kwargs)
    except TimeoutError as e:
        raise ProviderTimeoutError(
            message=f"{step} did not complete within {timeout:g}s",
            step=step,
            details={"timeout_seconds": timeout},
        ) from e
