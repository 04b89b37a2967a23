"""Plain-text rendering of engine events for terminal front ends."""

from __future__ import annotations

from typing import Dict

import typer

from ..contracts import (
    Event,
    EventType,
    LogPayload,
    ProgressPayload,
    Severity,
    StepDonePayload,
    StepsPayload,
    StepStartPayload,
)
from ..models import ExtrasItemStatus, ExtrasStage, ExtrasState
from ..state import QuestTrack

VERBOSE_PREFIXES = ("- Downloading ", "- Installing ", "- Syncing ", "- Cloning ")
VERBOSE_STARTS = (
    "Package operations:",
    "Verifying lock file contents can be installed on current platform.",
    "Generating optimized autoload files",
    "Extracting",
    "Created project in ",
    "Use the `composer fund` command",
)


def format_log_message(payload: LogPayload) -> str:
    message = payload.message.strip()
    fields = payload.fields
    if fields.get("kind") == "inline_progress":
        label = fields.get("label", "").strip() or message
        pct = fields.get("pct", "").strip()
        tail = fields.get("tail", "").strip()
        message = f"{label} {pct}%" if pct else label
        if tail:
            message += f" {tail}"
    return message


def is_verbose_message(message: str) -> bool:
    return (
        message.startswith(VERBOSE_PREFIXES)
        or message.startswith(VERBOSE_STARTS)
        or "packages you are using are looking for funding" in message
    )


def is_issue_message(message: str) -> bool:
    lower = message.lower()
    if any(word in lower for word in ("warning", "error", "failed")):
        return True
    return "⚠" in message or "✗" in message


def should_print_quiet(message: str) -> bool:
    message = message.strip()
    if not message:
        return False
    return is_issue_message(message) or not is_verbose_message(message)


def print_line(prefix: str, step_id: str, message: str, err: bool = False) -> None:
    message = message.strip()
    if not message:
        return
    if step_id.strip():
        typer.echo(f"{prefix} [{step_id.strip()}] {message}", err=err)
    else:
        typer.echo(f"{prefix} {message}", err=err)


class EventPrinter:
    """Prints events line by line and remembers whether anything failed.

    Quest step statuses are folded into ``track``; start and done lines for a
    step that has already settled are not printed again.
    """

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet
        self.failed = False
        self.track = QuestTrack()
        self.step_labels: Dict[str, str] = {}
        self._last_log: Dict[str, str] = {}

    def _label(self, event: Event) -> str:
        payload = event.payload
        if isinstance(payload, StepStartPayload) and payload.label.strip():
            self.step_labels[event.step_id] = payload.label.strip()
        return self.step_labels.get(event.step_id, "").strip() or event.step_id

    def _is_repeat(self, payload: LogPayload, step_id: str, message: str) -> bool:
        op = payload.fields.get("op", "").strip().lower()
        last = self._last_log.get(step_id)
        self._last_log[step_id] = message
        if op not in ("replace_last", "replace_last_if_same"):
            return False
        return last == message

    def _printable(self, event: Event) -> str:
        payload = event.payload
        if not isinstance(payload, LogPayload):
            return ""
        message = format_log_message(payload)
        if not message or self._is_repeat(payload, event.step_id, message):
            return ""
        if self.quiet and not should_print_quiet(message):
            return ""
        return message

    def show(self, event: Event) -> None:
        payload = event.payload
        status = self.track.status(event.step_id)
        settled = status is not None and status.is_terminal
        self.track.apply(event)
        if settled and event.type in (EventType.STEP_START, EventType.STEP_DONE):
            return
        if event.type == EventType.STEPS and isinstance(payload, StepsPayload):
            for step in payload.steps:
                if step.id and step.label:
                    self.step_labels[step.id] = step.label
        elif event.type == EventType.STEP_START:
            print_line("==>", event.step_id, self._label(event))
        elif event.type == EventType.STEP_DONE:
            ok = payload.ok if isinstance(payload, StepDonePayload) else True
            # Failed startup probes and extras finish with warn severity.
            if not ok and event.severity == Severity.ERROR:
                self.failed = True
            print_line("✓" if ok else "✗", event.step_id, self._label(event), err=not ok)
        elif event.type == EventType.PROGRESS and isinstance(payload, ProgressPayload):
            if not self.quiet:
                unit = payload.unit.strip() or "units"
                print_line(
                    "•", event.step_id, f"Progress: {payload.current}/{payload.total} {unit}"
                )
        elif event.type == EventType.LOG:
            message = self._printable(event)
            if message:
                print_line("-", event.step_id, message)
        elif event.type == EventType.WARNING:
            message = self._printable(event)
            if message:
                print_line("!", event.step_id, message, err=True)
        elif event.type == EventType.ERROR:
            self.failed = True
            if isinstance(payload, LogPayload):
                print_line("✗", event.step_id, format_log_message(payload), err=True)

    def show_extras(self, step_id: str, state: ExtrasState) -> None:
        """Print the final per-package results of the extras flow."""
        if state.stage != ExtrasStage.SUMMARY:
            return
        for result in state.results:
            line = f"{result.name}: {result.status.value}"
            if result.message:
                line += f" ({result.message})"
            failed = result.status == ExtrasItemStatus.ERROR
            print_line("!" if failed else "-", step_id, line, err=failed)
