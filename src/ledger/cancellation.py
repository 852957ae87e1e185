"""Cooperative cancellation primitives shared by the price batch code.

A batch is scoped by one asyncio.Event. Every suspension point inside the
batch (spacing delay, rate-limit cooldown, network request, waiting on a
request owned by another batch) goes through these helpers so setting the
event interrupts it immediately instead of after it completes.
"""

import asyncio
from collections.abc import Awaitable
from contextlib import suppress
from typing import TypeVar

from ledger.exceptions import BatchCancelled

T = TypeVar("T")


async def cancellable_delay(seconds: float, cancel_event: asyncio.Event) -> bool:
    """Sleep for `seconds` unless `cancel_event` fires first.

    Returns:
        True if the full delay elapsed, False if cancellation cut it short
        (or was already set on entry).
    """
    if cancel_event.is_set():
        return False
    if seconds <= 0:
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return True
    return False


async def await_unless_cancelled(awaitable: Awaitable[T], cancel_event: asyncio.Event) -> T:
    """Await `awaitable`, abandoning it if `cancel_event` fires first.

    The abandoned awaitable is cancelled. Wrap shared futures in
    asyncio.shield() before passing them in.

    Raises:
        BatchCancelled: If the event fired before the awaitable finished.
    """
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise BatchCancelled()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    raise BatchCancelled()
