"""
Cooperative cancellation for suspension points.

A call may carry an ``asyncio.Event`` as its cancellation signal. These
helpers race an awaitable (or a sleep) against that event and raise
``RequestCancelled`` when the event wins. Native task cancellation is
left untouched and propagates as ``asyncio.CancelledError``.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from qbo_client.errors import RequestCancelled

T = TypeVar("T")


def check_cancelled(cancel_event: asyncio.Event | None) -> None:
    """Raise ``RequestCancelled`` if the signal has already fired."""
    if cancel_event is not None and cancel_event.is_set():
        raise RequestCancelled()


async def cancellable(aw: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
    """
    Await ``aw`` unless the cancellation signal fires first.

    If the signal wins, the inner future/task is cancelled and awaited
    before ``RequestCancelled`` is raised. If both complete together, the
    result of ``aw`` wins so nothing it acquired is lost.

    Args:
        aw: Coroutine, task or future to wait on
        cancel_event: Optional cancellation signal

    Returns:
        Whatever ``aw`` returns

    Raises:
        RequestCancelled: If the signal fired first
    """
    if cancel_event is None:
        return await aw

    if cancel_event.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise RequestCancelled()

    inner = asyncio.ensure_future(aw)
    signal = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({inner, signal}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        inner.cancel()
        raise
    finally:
        signal.cancel()

    if inner in done:
        return inner.result()

    inner.cancel()
    await asyncio.wait({inner})
    raise RequestCancelled()


async def sleep_cancellable(delay: float, cancel_event: asyncio.Event | None) -> None:
    """
    Sleep for ``delay`` seconds, waking early if the signal fires.

    Raises:
        RequestCancelled: If the signal fired during the sleep
    """
    if cancel_event is None:
        await asyncio.sleep(delay)
        return

    check_cancelled(cancel_event)
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise RequestCancelled()
