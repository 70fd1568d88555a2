"""Cooperative cancellation threaded through one request.

The HTTP layer cancels the token when the client disconnects; the process
runner and the backend stream reader suspend through ``race()`` so that a
cancelled token interrupts them at their current suspension point.

Flow:
1. The route creates a token per request.
2. Stages ``await token.race(...)`` instead of awaiting directly.
3. ``cancel()`` wakes every pending ``race()`` with ``RequestCancelledError``.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from echolite.exceptions import RequestCancelledError

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation flag with an awaitable race helper.

    Single event loop only (asyncio single-threaded).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "Request cancelled by client"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token. Idempotent; the first reason wins."""
        if self._event.is_set():
            return
        if reason:
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        On cancellation the pending work is cancelled and awaited before
        ``RequestCancelledError`` is raised. A coroutine passed to an already
        cancelled token is closed without running.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelledError(self._reason)
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await work
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await work
        raise RequestCancelledError(self._reason)
