# mediapreview/core/cancellation.py
"""
Per-run cancellation signal.

One token is created for each pipeline run and passed explicitly to the
fetcher (and to any process started while it is live). Phase timers arm
the token; when a timer fires the token is cancelled and every operation
guarded by it is cancelled with it. Tokens are never shared between runs.
"""
from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Awaitable, Iterator, TypeVar

from mediapreview.core.domain import FetchTimeoutError
from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._timer: asyncio.TimerHandle | None = None
        self._armed_phase: str | None = None
        self._armed_timeout: float | None = None
        self.reason: str | None = None
        self.timeout: float | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def arm(self, phase: str, seconds: float) -> None:
        """Start (or restart) the phase timer; firing cancels the token."""
        self.disarm()
        loop = asyncio.get_running_loop()
        self._armed_phase = phase
        self._armed_timeout = seconds
        self._timer = loop.call_later(seconds, self._expire)

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._armed_phase = None
        self._armed_timeout = None

    @contextmanager
    def deadline(self, phase: str, seconds: float) -> Iterator["CancellationToken"]:
        """Arm the timer for the duration of the block."""
        self.arm(phase, seconds)
        try:
            yield self
        finally:
            self.disarm()

    def cancel(self, reason: str = "cancelled", timeout: float | None = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self.timeout = timeout
        self._event.set()
        logger.info(f"Run cancelled: reason={reason}")

    def _expire(self) -> None:
        self._timer = None
        self.cancel(self._armed_phase or "deadline", self._armed_timeout)

    async def wait(self) -> None:
        await self._event.wait()

    def error(self) -> FetchTimeoutError:
        return FetchTimeoutError(self.reason or "cancelled", self.timeout)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        Raises:
            FetchTimeoutError: the token was (or became) cancelled; the
                guarded operation has been cancelled and awaited.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise self.error()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _pending = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        # Let the operation unwind (close sockets, kill processes) before reporting
        await asyncio.gather(task, return_exceptions=True)
        raise self.error()
