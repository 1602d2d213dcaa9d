"""Exponential backoff for rate-limited provider calls.

Only :class:`~src.utils.errors.RateLimitError` is retried.  Every other
exception propagates on the first attempt so the caller's failure path
(skip the slice, placeholder answer) runs immediately.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.errors import RateLimitError
from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


def backoff_delay(attempt: int, base_delay_ms: int, max_delay_ms: int) -> float:
    """Return the sleep in seconds before retry number *attempt* (0-based)."""
    delay_ms = min(base_delay_ms * (2**attempt), max_delay_ms)
    return max(0, delay_ms) / 1000


async def retry_on_rate_limit(
    call: Callable[[], Awaitable[_T]],
    *,
    max_retries: int,
    base_delay_ms: int,
    max_delay_ms: int,
    operation: str = "provider_call",
) -> _T:
    """Await ``call()``, retrying up to *max_retries* times on rate limits.

    Parameters
    ----------
    call:
        Zero-argument factory returning a fresh awaitable per attempt.
    max_retries:
        Retries after the first attempt; ``0`` disables retrying.
    base_delay_ms, max_delay_ms:
        Backoff is ``min(base * 2**attempt, max)`` milliseconds.
    operation:
        Label used in the retry log event.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except RateLimitError as exc:
            # The last RateLimitError reaches the caller unchanged.
            if attempt >= max_retries:
                raise
            delay = backoff_delay(attempt, base_delay_ms, max_delay_ms)
            _logger.warning(
                "rate_limited_retrying",
                operation=operation,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay_s=delay,
                provider=exc.provider_name,
            )
            await asyncio.sleep(delay)
            attempt += 1
