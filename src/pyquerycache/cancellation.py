"""Cooperative cancellation tokens for transport calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pyquerycache.exceptions import RequestCancelledError

T = TypeVar("T")


class CancellationToken:
    """Signal passed to transports so an in-flight request can be abandoned.

    Transports may poll :attr:`cancelled` or register a callback through
    :meth:`add_callback`. :meth:`run` additionally cancels the task awaiting
    the request, so transports that ignore the token are interrupted too.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], object]) -> None:
        """Run *callback* on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError("Request was cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* in its own task, cancelling it with the token.

        Raises :class:`RequestCancelledError` when the token fired. A
        cancellation of the calling task itself propagates unchanged.
        """
        task = asyncio.ensure_future(awaitable)
        self.add_callback(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise RequestCancelledError("Request was cancelled") from None
            raise

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
