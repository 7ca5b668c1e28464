"""Cooperative cancellation shared by image preparation and submission."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from tryon.core.errors import RequestCancelledError, RequestTimeoutError

T = TypeVar("T")


class CancelSignal:
    """Set once by a top-level user action (retake, navigate away)."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError(self.reason or "cancelled")


async def run_cancellable(
    awaitable: Awaitable[T],
    signal: Optional[CancelSignal] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Await `awaitable` until it finishes, the signal fires or the deadline passes.

    The pending work is cancelled in the last two cases.

    Raises:
        RequestCancelledError: If the signal fired first
        RequestTimeoutError: If `timeout` seconds elapsed first
    """
    work = asyncio.ensure_future(awaitable)
    if signal is not None and signal.cancelled:
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        signal.raise_if_cancelled()

    waiters = {work}
    cancel_waiter = None
    if signal is not None:
        cancel_waiter = asyncio.ensure_future(signal.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if work in done:
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)

    if signal is not None and signal.cancelled:
        raise RequestCancelledError(signal.reason or "cancelled")
    raise RequestTimeoutError(f"Request timed out after {timeout}s")
