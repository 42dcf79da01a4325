"""Shared exponential-backoff retry policy."""

import asyncio

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .interfaces import Sleep


def backoff_retrying(
    attempts: int = 3,
    base_seconds: float = 1.0,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    sleep: Sleep | None = None,
) -> AsyncRetrying:
    """Build an async retry controller waiting ``base * 2**attempt`` between tries.

    The last exception is re-raised once attempts are exhausted.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_seconds, exp_base=2, min=0, max=60),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )
