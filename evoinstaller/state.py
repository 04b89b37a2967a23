"""Consumer-side reducer for the quest track."""

from __future__ import annotations

from typing import Dict, List, Optional

from .contracts import Event, EventType, Severity, StepDonePayload, StepsPayload
from .models import StepState, StepStatus


class QuestTrack:
    """Folds engine events into per-step statuses.

    Status only moves forward: pending, then active, then one of done, warn
    or error. Once a step is terminal it never changes again, and an event
    for one step never touches another.
    """

    def __init__(self, steps: Optional[List[StepState]] = None) -> None:
        self._order: List[str] = []
        self._steps: Dict[str, StepState] = {}
        for step in steps or []:
            self._add(step)

    def _add(self, step: StepState) -> None:
        if step.id in self._steps:
            return
        self._order.append(step.id)
        self._steps[step.id] = StepState(id=step.id, label=step.label)

    @property
    def steps(self) -> List[StepState]:
        return [self._steps[step_id] for step_id in self._order]

    def status(self, step_id: str) -> Optional[StepStatus]:
        step = self._steps.get(step_id)
        return step.status if step else None

    def apply(self, event: Event) -> None:
        if event.type == EventType.STEPS and isinstance(event.payload, StepsPayload):
            for step in event.payload.steps:
                self._add(step)
            return

        step = self._steps.get(event.step_id)
        if step is None:
            return

        if event.type == EventType.STEP_START:
            self._transition(step, StepStatus.ACTIVE)
        elif event.type == EventType.STEP_DONE and isinstance(
            event.payload, StepDonePayload
        ):
            if event.payload.ok:
                self._transition(step, StepStatus.DONE)
            elif event.severity == Severity.ERROR:
                self._transition(step, StepStatus.ERROR)
            else:
                self._transition(step, StepStatus.WARN)
        elif event.type == EventType.ERROR:
            self._transition(step, StepStatus.ERROR)

    @staticmethod
    def _transition(step: StepState, target: StepStatus) -> None:
        if step.status.is_terminal or step.status == target:
            return
        step.status = target
