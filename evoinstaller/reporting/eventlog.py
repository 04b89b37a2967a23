"""Markdown install report built from the event stream."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..constants import GLOBAL_FAILURE_MESSAGE, REPORT_FILENAME, STEP_DOWNLOAD
from ..contracts import (
    Event,
    EventType,
    LogPayload,
    ProgressPayload,
    StepDonePayload,
    StepsPayload,
    StepStartPayload,
)
from ..models import LogEntry, LogLevel, utcnow
from .redact import format_fields, sanitize_message

logger = logging.getLogger(__name__)

VERBOSE_PREFIXES = ("- Downloading ", "- Installing ", "- Syncing ", "- Cloning ")


class ReportConfig(BaseModel):
    """What the report header shows; never holds secrets."""

    always: bool = False
    install_dir: str = ""
    version: str = ""
    mode: str = ""
    force: bool = False
    branch: str = ""
    db_type: str = ""
    db_host: str = ""
    db_port: int = 0
    db_name: str = ""
    admin_directory: str = ""
    language: str = ""

    def options_line(self) -> str:
        opts = []
        if self.force:
            opts.append("force=true")
        if self.branch:
            opts.append(f"branch={self.branch}")
        if self.db_type:
            opts.append(f"db-type={self.db_type}")
        if self.db_host:
            opts.append(f"db-host={self.db_host}")
        if self.db_port > 0:
            opts.append(f"db-port={self.db_port}")
        if self.db_name:
            opts.append(f"db-name={self.db_name}")
        if self.admin_directory:
            opts.append(f"admin-directory={self.admin_directory}")
        if self.language:
            opts.append(f"language={self.language}")
        return ", ".join(opts)


@dataclass
class LogItem:
    timestamp: datetime
    level: LogLevel
    source: str
    message: str
    fields: str
    count: int = 1

    def line(self, include_fields: bool) -> str:
        text = f"{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')} [{self.level.value.upper()}]"
        if self.source:
            text += f" ({self.source})"
        if self.message:
            text += f" {self.message}"
        if self.count > 1:
            text += f" (x{self.count})"
        if include_fields and self.fields:
            text += f" [{self.fields}]"
        return text


def format_message(entry: LogEntry) -> str:
    message = entry.message.strip()
    if entry.fields.get("kind") == "inline_progress":
        label = entry.fields.get("label", "").strip() or message
        pct = entry.fields.get("pct", "").strip()
        tail = entry.fields.get("tail", "").strip()
        message = f"{label} {pct}%" if pct else label
        if tail:
            message += f" {tail}"
    return message


def is_verbose_message(message: str) -> bool:
    message = message.strip()
    return (
        message.startswith(VERBOSE_PREFIXES)
        or message.startswith("Package operations:")
        or message.startswith("Generating optimized autoload files")
    )


def is_failure_message(message: str) -> bool:
    lower = message.strip().lower()
    if not lower:
        return False
    if lower.startswith(("✗", "⚠")):
        return True
    return "failed" in lower or "error" in lower


def is_issue(item: LogItem) -> bool:
    if item.level in (LogLevel.ERROR, LogLevel.WARNING):
        return True
    lower = item.message.lower()
    if "✗" in lower or "⚠" in lower:
        return True
    return any(word in lower for word in ("failed", "error", "warning"))


def is_global_failure(event: Event) -> bool:
    return (
        event.step_id == STEP_DOWNLOAD
        and isinstance(event.payload, LogPayload)
        and event.payload.message.strip().rstrip(".").lower()
        == GLOBAL_FAILURE_MESSAGE.rstrip(".").lower()
    )


def compress_entries(entries: List[LogEntry]) -> List[LogItem]:
    """Collapse consecutive identical lines into one item with a count."""

    items: List[LogItem] = []
    for entry in entries:
        item = LogItem(
            timestamp=entry.timestamp,
            level=entry.level,
            source=entry.source.strip(),
            message=sanitize_message(format_message(entry)),
            fields=format_fields(entry.fields),
        )
        if items:
            last = items[-1]
            if (last.level, last.source, last.message, last.fields) == (
                item.level,
                item.source,
                item.message,
                item.fields,
            ):
                last.count += 1
                continue
        items.append(item)
    return items


def failure_reason(entries: List[LogEntry]) -> str:
    for entry in entries:
        if entry.level != LogLevel.ERROR:
            continue
        error = entry.fields.get("error", "").strip()
        if error:
            return sanitize_message(error)
        message = sanitize_message(format_message(entry))
        if message:
            return message

    for entry in entries:
        if entry.level != LogLevel.WARNING:
            continue
        error = entry.fields.get("error", "").strip()
        if error:
            return sanitize_message(error)
        message = sanitize_message(format_message(entry))
        if message and is_failure_message(message):
            return message

    for entry in entries:
        message = sanitize_message(format_message(entry))
        if message and is_failure_message(message):
            return message
    return ""


def step_heading(label: str, step_id: str) -> str:
    label = label.strip() or step_id.strip() or "Unknown step"
    if not step_id:
        return f"### {label}"
    return f"### {label} (`{step_id}`)"


def step_ref(label: str, step_id: str) -> str:
    if not label:
        return f"`{step_id}`"
    return f"{label} (`{step_id}`)"


def resolve_log_dir(install_dir: str) -> Path:
    """Install dir if it can be created, else the working directory, else temp."""

    for candidate in (install_dir or ".", os.getcwd()):
        path = Path(candidate)
        try:
            path.mkdir(parents=True, exist_ok=True)
            return path
        except OSError as exc:
            logger.debug(f"Cannot use {path} for the install report: {exc}")
    return Path(tempfile.gettempdir())


class EventLogger:
    """Records every event of a run and writes ``log.md`` on demand.

    Recording is a pure fold over the event stream; nothing touches the
    filesystem until ``finalize``. The report is written only when
    ``always`` is set or an error was seen.
    """

    def __init__(self, config: Optional[ReportConfig] = None) -> None:
        self.config = config or ReportConfig()
        self.started = utcnow()
        self.ended: Optional[datetime] = None
        self.step_labels: Dict[str, str] = {}
        self.entries: List[LogEntry] = []
        self.had_error = False
        self.failed_steps: List[str] = []

    def _fail_step(self, step_id: str) -> None:
        if step_id and step_id not in self.failed_steps:
            self.failed_steps.append(step_id)

    def record(self, event: Event) -> None:
        self.ended = event.timestamp
        payload = event.payload

        if event.type == EventType.STEPS and isinstance(payload, StepsPayload):
            for step in payload.steps:
                if step.id and step.label:
                    self.step_labels[step.id] = step.label

        elif event.type == EventType.STEP_START:
            label = event.step_id
            if isinstance(payload, StepStartPayload) and payload.label.strip():
                label = payload.label.strip()
            if event.step_id and label:
                self.step_labels[event.step_id] = label
            self._append(event, LogLevel.INFO, f"Step started: {label}")

        elif event.type == EventType.STEP_DONE:
            ok = payload.ok if isinstance(payload, StepDonePayload) else True
            label = self.step_labels.get(event.step_id, "").strip() or event.step_id
            if ok:
                self._append(event, LogLevel.INFO, f"Step completed: {label}")
            else:
                self._fail_step(event.step_id)
                self._append(event, LogLevel.WARNING, f"Step failed: {label}")

        elif event.type == EventType.PROGRESS and isinstance(payload, ProgressPayload):
            unit = payload.unit.strip() or "units"
            self._append(
                event, LogLevel.INFO, f"Progress: {payload.current}/{payload.total} {unit}"
            )

        elif event.type == EventType.LOG:
            self._add(event, LogLevel.INFO)

        elif event.type == EventType.WARNING:
            self._add(event, LogLevel.WARNING)

        elif event.type == EventType.ERROR:
            self.had_error = True
            if is_global_failure(event):
                event = event.model_copy(update={"step_id": ""})
            else:
                self._fail_step(event.step_id)
            self._add(event, LogLevel.ERROR)

    def mark_failure(self) -> None:
        self.had_error = True

    def _append(self, event: Event, level: LogLevel, message: str) -> None:
        self.entries.append(
            LogEntry(
                timestamp=event.timestamp,
                level=level,
                source=event.source,
                step_id=event.step_id,
                message=message,
            )
        )

    def _add(self, event: Event, level: LogLevel) -> None:
        payload = event.payload
        if not isinstance(payload, LogPayload):
            return
        entry = LogEntry(
            timestamp=event.timestamp,
            level=level,
            source=event.source,
            step_id=event.step_id,
            message=payload.message,
            fields=dict(payload.fields),
        )
        op = payload.fields.get("op")
        if op == "replace_last" and self.entries:
            self.entries[-1] = entry
            return
        if op == "replace_last_if_same" and self.entries:
            last = self.entries[-1]
            if last.fields.get("kind") == payload.fields.get("kind") and last.fields.get(
                "progress_key"
            ) == payload.fields.get("progress_key"):
                self.entries[-1] = entry
                return
        self.entries.append(entry)

    def finalize(self) -> Optional[Path]:
        """Write the report when required; returns its path or ``None``."""

        if not self.config.always and not self.had_error:
            return None
        path = resolve_log_dir(self.config.install_dir) / REPORT_FILENAME
        path.write_text(self.render(), encoding="utf-8")
        logger.info(f"Install report written to {path}")
        return path

    # Rendering

    def _group(self) -> Tuple[List[Tuple[str, List[LogEntry]]], List[LogEntry]]:
        groups: Dict[str, List[LogEntry]] = {}
        general: List[LogEntry] = []
        for entry in self.entries:
            step_id = entry.step_id.strip()
            if not step_id:
                general.append(entry)
            else:
                groups.setdefault(step_id, []).append(entry)
        return list(groups.items()), general

    def render(self) -> str:
        groups, general = self._group()
        cfg = self.config
        ended = self.ended or utcnow()
        lines = ["# Evolution CMS Installer log", "", "## Summary"]
        lines.append(f"- Started: {self.started.isoformat(timespec='seconds')}")
        lines.append(f"- Ended: {ended.isoformat(timespec='seconds')}")
        lines.append(f"- Result: {'Failed' if self.had_error else 'Completed'}")
        if self.had_error:
            reason = failure_reason(self.entries)
            if reason:
                lines.append(f"- Failure reason: {reason}")
        failed = self._failed_refs([step_id for step_id, _ in groups])
        if failed:
            lines.append(f"- Failed steps: {'; '.join(failed)}")
        if cfg.install_dir.strip():
            lines.append(f"- Install dir: {cfg.install_dir.strip()}")
        if cfg.version.strip():
            lines.append(f"- Version: {cfg.version.strip()}")
        if cfg.mode.strip():
            lines.append(f"- Mode: {cfg.mode.strip()}")
        options = cfg.options_line()
        if options:
            lines.append(f"- Options: {options}")

        lines += ["", "## Steps"]
        if not groups:
            lines.append("_No step logs recorded._")
        for step_id, entries in groups:
            lines.append(step_heading(self.step_labels.get(step_id, ""), step_id))
            lines += self._entry_lines(entries)
            lines.append("")

        if general:
            lines += ["", "## General"]
            lines += self._entry_lines(general)
        return "\n".join(lines) + "\n"

    def _failed_refs(self, ordered_steps: List[str]) -> List[str]:
        refs = []
        for step_id in ordered_steps:
            if step_id in self.failed_steps:
                refs.append(step_ref(self.step_labels.get(step_id, "").strip(), step_id))
        for step_id in self.failed_steps:
            if step_id not in ordered_steps:
                refs.append(step_ref("", step_id))
        return refs

    @staticmethod
    def _entry_lines(entries: List[LogEntry]) -> List[str]:
        items = compress_entries(entries)
        if not items:
            return ["_No logs recorded._"]

        issues = [item for item in items if is_issue(item)]
        highlights = [
            item for item in items if not is_verbose_message(item.message) or is_issue(item)
        ]
        has_verbose = any(is_verbose_message(item.message) for item in items)

        lines: List[str] = []
        if issues:
            lines += ["#### Issues", "```text"]
            lines += [item.line(include_fields=True) for item in issues]
            lines += ["```", ""]
        if highlights:
            lines.append("#### Highlights")
            lines += [f"- {item.line(include_fields=False)}" for item in highlights]
            lines.append("")
        if has_verbose:
            lines += [
                "<details>",
                f"<summary>Full output ({len(items)} lines)</summary>",
                "",
                "```text",
            ]
            lines += [item.line(include_fields=True) for item in items]
            lines += ["```", "</details>"]
        return lines
