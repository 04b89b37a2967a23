"""Bounded in-process channels built on ``asyncio.Queue``."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from ..contracts import Action, Event
from ..errors import OperationCancelled
from ..utils.cancel import CancelToken, wait_or_cancel
from .base import ActionSource, EventSink

logger = logging.getLogger(__name__)


class InMemoryEventChannel(EventSink):
    """Bounded event queue with close-once semantics.

    Producers block while the queue is full unless cancelled. Consumers
    drain whatever was buffered before the close and then stop.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._closed_event = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: Event, cancel: CancelToken) -> bool:
        if self._closed or cancel.cancelled:
            return False
        try:
            await wait_or_cancel(self._queue.put(event), cancel)
        except OperationCancelled:
            return False
        return True

    def emit_nowait(self, event: Event) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug(f"Event queue full; dropped {event.type.value} for {event.step_id}")
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()

    async def next_event(self) -> Optional[Event]:
        """Return the next event, or ``None`` once closed and drained."""
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._closed:
                return None
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed_event.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, closer}, return_when=asyncio.FIRST_COMPLETED
                )
            except asyncio.CancelledError:
                getter.cancel()
                raise
            finally:
                closer.cancel()
            if getter in done:
                return getter.result()
            getter.cancel()

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self.next_event()
            if event is None:
                return
            yield event


class InMemoryActionChannel(ActionSource):
    """Bounded action queue; pushes never block."""

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: asyncio.Queue[Action] = asyncio.Queue(maxsize=maxsize)

    def push(self, action: Action) -> bool:
        try:
            self._queue.put_nowait(action)
        except asyncio.QueueFull:
            logger.debug(f"Action queue full; dropped answer for {action.question_id}")
            return False
        return True

    async def receive(self, cancel: CancelToken) -> Action:
        return await wait_or_cancel(self._queue.get(), cancel)

    def pending(self) -> int:
        return self._queue.qsize()
