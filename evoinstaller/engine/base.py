"""Base engine interface for evoinstaller runs."""

from __future__ import annotations

import abc
import asyncio
import logging

from ..channels.base import ActionSource, EventSink
from ..errors import OperationCancelled
from ..utils.cancel import CancelToken
from .emitter import EventEmitter

logger = logging.getLogger(__name__)


class BaseEngine(metaclass=abc.ABCMeta):
    """Abstract engine that drives one install run over the channels.

    ``run`` owns the event channel: it is the only writer and closes it
    exactly once when the workflow ends, however it ends.
    """

    source = "install"

    async def run(
        self, events: EventSink, actions: ActionSource, cancel: CancelToken
    ) -> None:
        emitter = EventEmitter(events, cancel, self.source)
        try:
            await self._run(emitter, actions, cancel)
        except OperationCancelled as exc:
            logger.info(f"Run cancelled: {exc}")
            emitter.abandon_open_steps()
        except asyncio.CancelledError:
            logger.info("Run task cancelled")
            emitter.abandon_open_steps()
            raise
        except Exception as exc:
            logger.exception("Unexpected engine failure")
            await emitter.error("", "Unexpected installer error.", {"error": str(exc)})
            emitter.abandon_open_steps()
        finally:
            events.close()

    @abc.abstractmethod
    async def _run(
        self, emitter: EventEmitter, actions: ActionSource, cancel: CancelToken
    ) -> None:
        """Execute the workflow; returning normally ends the run."""
        raise NotImplementedError
