"""Base channel interfaces between the engine and its consumers."""

from __future__ import annotations

import abc
from typing import AsyncIterator

from ..contracts import Action, Event
from ..utils.cancel import CancelToken


class EventSink(metaclass=abc.ABCMeta):
    """Outbound event queue. The engine is its only writer."""

    @abc.abstractmethod
    async def emit(self, event: Event, cancel: CancelToken) -> bool:
        """Enqueue ``event``; returns ``False`` once cancelled or closed."""
        raise NotImplementedError

    @abc.abstractmethod
    def emit_nowait(self, event: Event) -> bool:
        """Best-effort enqueue that never blocks."""
        raise NotImplementedError

    @abc.abstractmethod
    def close(self) -> None:
        """Close the queue. Safe to call more than once."""
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def closed(self) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def __aiter__(self) -> AsyncIterator[Event]:
        """Yield buffered events until the queue is closed and drained."""
        raise NotImplementedError


class ActionSource(metaclass=abc.ABCMeta):
    """Inbound action queue. The engine is its only reader."""

    @abc.abstractmethod
    def push(self, action: Action) -> bool:
        """Enqueue ``action`` without blocking; drops it when full."""
        raise NotImplementedError

    @abc.abstractmethod
    async def receive(self, cancel: CancelToken) -> Action:
        """Wait for the next action or raise ``OperationCancelled``."""
        raise NotImplementedError
