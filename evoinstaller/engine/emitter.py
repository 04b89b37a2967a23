"""Helpers that build and emit engine events."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..channels.base import EventSink
from ..constants import QUEST_STEPS, QUEST_TOTAL, step_label
from ..contracts import (
    Event,
    EventPayload,
    EventType,
    ExecRequestPayload,
    ExtrasPayload,
    LogPayload,
    ProgressPayload,
    QuestionPayload,
    Severity,
    StepDonePayload,
    StepsPayload,
    StepStartPayload,
    SystemStatusPayload,
)
from ..models import ExtrasState, QuestionState, ReleaseInfo, StepState, SystemStatus
from ..utils.cancel import CancelToken

logger = logging.getLogger(__name__)


class EventEmitter:
    """Emits events for one engine run and remembers which steps are open.

    Every helper returns ``False`` once the run is cancelled or the queue
    is closed; callers treat that as "stop".
    """

    def __init__(self, sink: EventSink, cancel: CancelToken, source: str) -> None:
        self.sink = sink
        self.cancel = cancel
        self.source = source
        self._open: List[str] = []

    @property
    def open_steps(self) -> List[str]:
        return list(self._open)

    async def emit(
        self,
        type: EventType,
        step_id: str = "",
        payload: Optional[EventPayload] = None,
        severity: Severity = Severity.INFO,
        source: Optional[str] = None,
    ) -> bool:
        event = Event(
            type=type,
            step_id=step_id,
            source=source or self.source,
            severity=severity,
            payload=payload,
        )
        return await self.sink.emit(event, self.cancel)

    async def steps(self, step_ids: List[str]) -> bool:
        states = [StepState(id=step_id, label=step_label(step_id)) for step_id in step_ids]
        return await self.emit(EventType.STEPS, payload=StepsPayload(steps=states))

    async def step_start(
        self, step_id: str, source: Optional[str] = None, label: Optional[str] = None
    ) -> bool:
        if step_id not in self._open:
            self._open.append(step_id)
        index = QUEST_STEPS.index(step_id) + 1 if step_id in QUEST_STEPS else 0
        logger.info(f"Step started: {step_id}")
        return await self.emit(
            EventType.STEP_START,
            step_id,
            StepStartPayload(label=label or step_label(step_id), index=index, total=QUEST_TOTAL),
            source=source,
        )

    async def step_done(
        self,
        step_id: str,
        ok: bool = True,
        severity: Optional[Severity] = None,
        release: Optional[ReleaseInfo] = None,
        source: Optional[str] = None,
    ) -> bool:
        if severity is None:
            severity = Severity.INFO if ok else Severity.ERROR
        logger.info(f"Step finished: {step_id} ok={ok}")
        delivered = await self.emit(
            EventType.STEP_DONE,
            step_id,
            StepDonePayload(ok=ok, release=release),
            severity=severity,
            source=source,
        )
        if delivered and step_id in self._open:
            self._open.remove(step_id)
        return delivered

    async def log(
        self,
        step_id: str,
        message: str,
        fields: Optional[Dict[str, str]] = None,
        source: Optional[str] = None,
    ) -> bool:
        return await self.emit(
            EventType.LOG,
            step_id,
            LogPayload(message=message, fields=dict(fields or {})),
            source=source,
        )

    async def warn(
        self,
        step_id: str,
        message: str,
        fields: Optional[Dict[str, str]] = None,
        source: Optional[str] = None,
    ) -> bool:
        return await self.emit(
            EventType.WARNING,
            step_id,
            LogPayload(message=message, fields=dict(fields or {})),
            severity=Severity.WARN,
            source=source,
        )

    async def error(
        self,
        step_id: str,
        message: str,
        fields: Optional[Dict[str, str]] = None,
        source: Optional[str] = None,
    ) -> bool:
        return await self.emit(
            EventType.ERROR,
            step_id,
            LogPayload(message=message, fields=dict(fields or {})),
            severity=Severity.ERROR,
            source=source,
        )

    async def progress(
        self, step_id: str, current: int, total: int = 100, unit: str = "pct"
    ) -> bool:
        return await self.emit(
            EventType.PROGRESS,
            step_id,
            ProgressPayload(current=current, total=total, unit=unit),
        )

    async def question(self, step_id: str, question: QuestionState) -> bool:
        return await self.emit(EventType.LOG, step_id, QuestionPayload(question=question))

    async def system_status(self, step_id: str, status: SystemStatus) -> bool:
        return await self.emit(
            EventType.SYSTEM_STATUS, step_id, SystemStatusPayload(status=status)
        )

    async def extras(self, step_id: str, state: ExtrasState, source: Optional[str] = None) -> bool:
        return await self.emit(
            EventType.EXTRAS,
            step_id,
            ExtrasPayload(state=state.model_copy(deep=True)),
            source=source,
        )

    async def exec_request(self, step_id: str, command: List[str]) -> bool:
        return await self.emit(
            EventType.EXEC_REQUEST, step_id, ExecRequestPayload(command=list(command))
        )

    def abandon_open_steps(self) -> None:
        """Mark still-open steps as failed without blocking.

        Used after cancellation, when regular emission is already a no-op.
        """
        for step_id in list(self._open):
            self._open.remove(step_id)
            self.sink.emit_nowait(
                Event(
                    type=EventType.STEP_DONE,
                    step_id=step_id,
                    source=self.source,
                    severity=Severity.ERROR,
                    payload=StepDonePayload(ok=False),
                )
            )
