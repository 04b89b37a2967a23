"""Explicit cancellation tokens for the engine and its helpers."""

from __future__ import annotations

import asyncio
from typing import Awaitable, List, Optional, TypeVar

from ..errors import OperationCancelled

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation signal that can be shared and nested.

    Cancelling a token cancels every child derived from it; cancelling a
    child leaves the parent untouched.
    """

    def __init__(self, parent: Optional["CancelToken"] = None) -> None:
        self._event = asyncio.Event()
        self._children: List[CancelToken] = []
        self.reason = ""
        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or "cancelled")


async def wait_or_cancel(awaitable: Awaitable[T], token: CancelToken) -> T:
    """Await ``awaitable`` unless ``token`` fires first.

    The losing side is cancelled. Raises ``OperationCancelled`` when the
    token wins.
    """
    token.raise_if_cancelled()
    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        waiter.cancel()
        raise
    if work in done:
        waiter.cancel()
        return work.result()
    work.cancel()
    try:
        await work
    except (asyncio.CancelledError, Exception):
        pass
    raise OperationCancelled(token.reason or "cancelled")
