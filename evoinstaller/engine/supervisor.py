"""Runs the installer console and turns its output into events."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ..contracts import EventType
from ..errors import InstallerError, OperationCancelled
from ..services.process import kill_process, merged_env
from ..utils.cancel import wait_or_cancel
from .emitter import EventEmitter
from .progress import ProgressMapper
from .tracker import StepTracker, StepTransition

logger = logging.getLogger(__name__)

LINE_BUFFER = 256
STREAM_LIMIT = 1024 * 1024

CONSOLE_TAG = re.compile(r"<[^>]+>")
PLAIN_PROGRESS = re.compile(r"^([A-Za-z][A-Za-z ]+)\s+\[[^\]]+\]\s+(\d{1,3})%\s*(\([^)]*\))?\s*$")
SEEDER_START = re.compile(r"^Running seeder:\s*([A-Za-z0-9_\\-]+)\.\.\.$")
SEEDER_DONE = re.compile(r"^✔\s*Seeder\s+([A-Za-z0-9_\\-]+)\s+completed\.\s*$")

TRACKER_SOURCE = "install"
OUTPUT_SOURCE = "php"


def clean_line(raw: str) -> str:
    return CONSOLE_TAG.sub("", raw).strip()


def should_suppress(line: str) -> bool:
    if (line.startswith("✔ PHP version ") or line.startswith("PHP version ")) and (
        " is supported." in line
    ):
        return True
    return line.startswith("INFO") and "Seeding database." in line


@dataclass
class ClassifiedLine:
    type: EventType
    message: str
    fields: Dict[str, str] = field(default_factory=dict)


class LineClassifier:
    """Decides how one output line should be presented.

    Keeps just enough history to collapse a seeder's start/finish pair and
    repeated identical lines into in-place updates.
    """

    def __init__(self) -> None:
        self._seeder: Optional[str] = None
        self._seeder_step = ""
        self._last_plain: Optional[tuple] = None

    def classify(self, line: str, stderr: bool, step_id: str) -> Optional[ClassifiedLine]:
        if should_suppress(line):
            return None

        start = SEEDER_START.match(line)
        if start:
            self._seeder, self._seeder_step = start[1], step_id

        done = SEEDER_DONE.match(line)
        if done and self._seeder == done[1] and self._seeder_step == step_id:
            self._seeder, self._seeder_step = None, ""
            return ClassifiedLine(EventType.LOG, line, {"op": "replace_last"})

        progress = PLAIN_PROGRESS.match(line)
        if progress and progress[1].strip():
            label = progress[1].strip()
            pct = max(0, min(100, int(progress[2])))
            return ClassifiedLine(
                EventType.LOG,
                label,
                {
                    "kind": "inline_progress",
                    "op": "replace_last_if_same",
                    "progress_key": label.lower(),
                    "label": label,
                    "pct": str(pct),
                    "tail": (progress[3] or "").strip(),
                },
            )

        fields: Dict[str, str] = {}
        key = (line, step_id, stderr)
        if key == self._last_plain:
            fields["op"] = "replace_last"
        else:
            self._last_plain = key
        return ClassifiedLine(EventType.WARNING if stderr else EventType.LOG, line, fields)


@dataclass(frozen=True)
class OutputLine:
    text: str
    stderr: bool


async def _pump(stream: asyncio.StreamReader, stderr: bool, queue: asyncio.Queue) -> None:
    try:
        async for raw in stream:
            line = clean_line(raw.decode("utf-8", errors="replace"))
            if line:
                await queue.put(OutputLine(line, stderr))
    except ValueError as exc:
        logger.warning(f"Stopped reading installer output: {exc}")


class InstallSupervisor:
    """Supervises one installer subprocess run.

    Both output streams are merged into a bounded queue and handled one line
    at a time: the step tracker classifies lifecycle markers, a per-step
    progress mapper turns package manager chatter into progress readings,
    and the line classifier decides how the line itself is shown. A step
    failure kills the subprocess; the remaining buffered lines are drained.
    """

    def __init__(self, emitter: EventEmitter) -> None:
        self.emitter = emitter
        self.tracker = StepTracker()
        self.classifier = LineClassifier()
        self._mappers: Dict[str, ProgressMapper] = {}

    async def apply(self, transitions: List[StepTransition]) -> None:
        for transition in transitions:
            if transition.started:
                await self.emitter.step_start(transition.step_id, source=TRACKER_SOURCE)
            else:
                await self.emitter.step_done(
                    transition.step_id, transition.ok, source=TRACKER_SOURCE
                )

    async def fail(self, reason: str) -> None:
        await self.apply(self.tracker.fail_remaining())
        raise InstallerError(reason)

    async def run(
        self,
        argv: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Run to completion; raises ``InstallerError`` when the install failed."""

        cancel = self.emitter.cancel
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd or None,
                env=merged_env(env),
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            await self.fail(f"unable to start installer: {exc}")

        queue: asyncio.Queue = asyncio.Queue(maxsize=LINE_BUFFER)
        readers = [
            asyncio.ensure_future(_pump(process.stdout, False, queue)),
            asyncio.ensure_future(_pump(process.stderr, True, queue)),
        ]

        async def _close_when_drained() -> None:
            await asyncio.gather(*readers)
            await queue.put(None)

        closer = asyncio.ensure_future(_close_when_drained())
        killed = False
        try:
            while True:
                item = await wait_or_cancel(queue.get(), cancel)
                if item is None:
                    break
                await self.apply(self.tracker.observe(item.text))
                if self.tracker.failed and not killed:
                    killed = True
                    logger.info("Step failure detected; stopping installer subprocess")
                    await kill_process(process)
                await self._handle(item)
            returncode = await wait_or_cancel(process.wait(), cancel)
        except (OperationCancelled, asyncio.CancelledError):
            await kill_process(process)
            raise
        finally:
            for task in (*readers, closer):
                task.cancel()

        if self.tracker.failed:
            await self.fail("installation aborted due to failed step")
        if returncode != 0:
            await self.fail(f"installer exited with status {returncode}")
        await self.apply(self.tracker.finalize(success=True))

    async def _handle(self, item: OutputLine) -> None:
        step_id = self.tracker.current
        mapper = self._mappers.setdefault(step_id, ProgressMapper())
        pct = mapper.observe(item.text)
        if pct is not None:
            await self.emitter.progress(step_id, pct)

        classified = self.classifier.classify(item.text, item.stderr, step_id)
        if classified is None:
            return
        if classified.type == EventType.WARNING:
            await self.emitter.warn(step_id, classified.message, classified.fields, source=OUTPUT_SOURCE)
        else:
            await self.emitter.log(step_id, classified.message, classified.fields, source=OUTPUT_SOURCE)
