"""Cancellation token and cancellable waits for every suspension point."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from typing import TypeVar

from agent_taskflow.errors import Cancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot external cancellation signal.

    Bind it to nothing; the first ``wait()`` call creates the event on the
    running loop, so a token can be built outside of async code.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel: CancellationToken | None,
    *,
    timeout: float | None = None,
) -> T:
    """Await ``awaitable`` unless ``cancel`` fires or ``timeout`` elapses first.

    Raises ``Cancelled`` on the signal and ``TimeoutError`` on the deadline.
    In both cases the in-flight work is abandoned (its task is cancelled).
    """

    if cancel is not None and cancel.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise Cancelled
    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
    pending_set = {work} if waiter is None else {work, waiter}
    try:
        done, _ = await asyncio.wait(
            pending_set,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if work in done:
            return work.result()
        if waiter is not None and waiter in done:
            raise Cancelled
        raise TimeoutError(f"Operation exceeded {timeout}s.")
    finally:
        for future in pending_set:
            if not future.done():
                future.cancel()
        if not work.done() or work.cancelled():
            await asyncio.gather(work, return_exceptions=True)


async def sleep_cancellable(seconds: float, cancel: CancellationToken | None) -> None:
    """Sleep for ``seconds``; raise ``Cancelled`` as soon as the token fires."""

    if seconds <= 0:
        if cancel is not None:
            cancel.raise_if_cancelled()
        return
    if cancel is None:
        await asyncio.sleep(seconds)
        return
    try:
        await run_cancellable(cancel.wait(), None, timeout=seconds)
    except TimeoutError:
        return
    raise Cancelled
