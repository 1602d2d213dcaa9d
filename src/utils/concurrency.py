"""Bounded-concurrency helpers for the document pipeline.

``throttled_gather`` is a drop-in replacement for ``asyncio.gather`` that
wraps each awaitable in a semaphore acquire/release.  The orchestrator uses
it for the per-document slice batches (extraction calls to the LLM) and,
when configured, for cross-document fan-out.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with optional semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore bounding how many awaitables execute at once.
        ``None`` runs them all concurrently.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics, except
        that with ``False`` the first exception also cancels every
        awaitable still pending.  ``asyncio.CancelledError`` always
        propagates to the caller.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    async def _wrapped(coro: Awaitable[_T]) -> _T:
        if semaphore is None:
            return await coro
        # Awaitables queue here; at most the semaphore value run at once.
        async with semaphore:
            return await coro

    tasks = [asyncio.ensure_future(_wrapped(c)) for c in coros]
    try:
        results = await asyncio.gather(*tasks, return_exceptions=return_exceptions)
    except BaseException:
        # gather does not cancel the remaining awaitables when one raises.
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    # With return_exceptions=True gather would hand back a cancellation as a
    # result; an aborted run must still unwind.
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
    return results
