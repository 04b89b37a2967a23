"""Classifies installer subprocess output into step lifecycle transitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Set, Tuple

from ..constants import (
    QUEST_STEPS,
    STEP_DEPENDENCIES,
    STEP_DOWNLOAD,
    STEP_FINALIZE,
    STEP_INSTALL,
    STEP_PRESETS,
    step_label,
)

TRACKED_STEPS: List[str] = [
    STEP_DOWNLOAD,
    STEP_INSTALL,
    STEP_PRESETS,
    STEP_DEPENDENCIES,
    STEP_FINALIZE,
]

# Effects are (verb, step) pairs applied in order; verb is start, done or fail.
_Effect = Tuple[str, str]

# Ordered (needle, effects); the first entry whose needle appears wins.
# Failure phrases are matched case-insensitively and come first.
FAILURE_MARKERS: Sequence[Tuple[str, Tuple[_Effect, ...]]] = (
    ("failed to download evolution cms", (("fail", STEP_DOWNLOAD),)),
    ("migration failed", (("fail", STEP_INSTALL),)),
    ("failed to install dependencies", (("fail", STEP_INSTALL),)),
    ("failed to update dependencies", (("fail", STEP_DEPENDENCIES),)),
)

PROGRESS_MARKERS: Sequence[Tuple[str, Tuple[_Effect, ...]]] = (
    ("Downloading Evolution CMS", (("start", STEP_DOWNLOAD),)),
    ("Finding compatible Evolution CMS version", (("start", STEP_DOWNLOAD),)),
    (
        "downloaded and extracted successfully",
        (("done", STEP_DOWNLOAD), ("start", STEP_INSTALL)),
    ),
    ("Setting up database", (("start", STEP_INSTALL),)),
    ("Running database migrations", (("start", STEP_INSTALL),)),
    ("Running database seeders", (("start", STEP_INSTALL),)),
    (
        "All seeders completed successfully",
        (("done", STEP_INSTALL), ("done", STEP_PRESETS)),
    ),
    (
        "Updating dependencies with Composer",
        (("done", STEP_INSTALL), ("done", STEP_PRESETS), ("start", STEP_DEPENDENCIES)),
    ),
    (
        "Dependencies updated successfully",
        (("done", STEP_DEPENDENCIES), ("start", STEP_FINALIZE)),
    ),
    (
        "composer.json not found. Skipping dependency update",
        (("done", STEP_DEPENDENCIES), ("start", STEP_FINALIZE)),
    ),
    ("Finalizing installation", (("start", STEP_FINALIZE),)),
    ("Installation finalized successfully", (("done", STEP_FINALIZE),)),
)


@dataclass(frozen=True)
class StepTransition:
    """A step lifecycle change derived from output."""

    step_id: str
    started: bool
    ok: bool = True

    @property
    def label(self) -> str:
        return step_label(self.step_id)

    @property
    def index(self) -> int:
        return QUEST_STEPS.index(self.step_id) + 1


class StepTracker:
    """Stateful, side-effect free classifier of installer output.

    Each step starts at most once and finishes at most once. A failure is
    sticky: once any step fails, ``failed`` stays true and a later failure
    signal for an already finished step is ignored.
    """

    def __init__(self, current: str = STEP_DOWNLOAD) -> None:
        self.current = current
        self.failed = False
        self._started: Set[str] = {current}
        self._done: Dict[str, bool] = {}

    def is_done(self, step_id: str) -> bool:
        return step_id in self._done

    def observe(self, line: str) -> List[StepTransition]:
        lowered = line.lower()
        for needle, effects in FAILURE_MARKERS:
            if needle in lowered:
                return self._apply(effects)
        for needle, effects in PROGRESS_MARKERS:
            if needle in line:
                return self._apply(effects)
        return []

    def finalize(self, success: bool) -> List[StepTransition]:
        """Give every tracked step a terminal status.

        After a clean exit without explicit failures, unfinished steps are
        treated as completed. Otherwise they are all failed.
        """
        if not success or self.failed:
            return self.fail_remaining()
        transitions: List[StepTransition] = []
        for step_id in TRACKED_STEPS:
            transitions.extend(self._finish(step_id, ok=True))
        return transitions

    def fail_remaining(self) -> List[StepTransition]:
        transitions: List[StepTransition] = []
        for step_id in TRACKED_STEPS:
            transitions.extend(self._finish(step_id, ok=False))
        return transitions

    def _apply(self, effects: Tuple[_Effect, ...]) -> List[StepTransition]:
        transitions: List[StepTransition] = []
        for verb, step_id in effects:
            if verb == "start":
                transitions.extend(self._start(step_id))
            else:
                transitions.extend(self._finish(step_id, ok=(verb == "done")))
        return transitions

    def _start(self, step_id: str) -> List[StepTransition]:
        if step_id in self._done or self.current == step_id:
            return []
        self.current = step_id
        self._started.add(step_id)
        return [StepTransition(step_id, started=True)]

    def _finish(self, step_id: str, ok: bool) -> List[StepTransition]:
        if step_id in self._done:
            return []
        self._done[step_id] = ok
        if not ok:
            self.failed = True
        return [StepTransition(step_id, started=False, ok=ok)]
