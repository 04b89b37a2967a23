"""State models shared by the engine, front ends and the event logger."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    WARN = "warn"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.DONE, StepStatus.WARN, StepStatus.ERROR)


class StepState(BaseModel):
    """A single entry of the quest track."""

    id: str
    label: str
    status: StepStatus = StepStatus.PENDING


class QuestionKind(str, Enum):
    SELECT = "select"
    INPUT = "input"


class QuestionOption(BaseModel):
    id: str
    label: str
    enabled: bool = True
    reason: str = ""


class QuestionState(BaseModel):
    """A question the engine asks the consumer.

    ``selected`` is the index of the default option for select questions.
    Disabled options are shown but never accepted as answers.
    """

    id: str
    kind: QuestionKind
    prompt: str
    options: List[QuestionOption] = Field(default_factory=list)
    selected: int = 0
    default: str = ""
    secret: bool = False

    def option(self, option_id: str) -> Optional[QuestionOption]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    def enabled_options(self) -> List[QuestionOption]:
        return [opt for opt in self.options if opt.enabled]

    def default_option(self) -> Optional[QuestionOption]:
        if 0 <= self.selected < len(self.options):
            return self.options[self.selected]
        return None


class StatusLevel(str, Enum):
    OK = "ok"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def coerce(cls, raw: Optional[str]) -> "StatusLevel":
        """Map loose probe output to a level; unknown values count as ok."""
        value = (raw or "").strip().lower()
        if value in ("warn", "warning"):
            return cls.WARN
        if value in ("error", "err"):
            return cls.ERROR
        return cls.OK


class StatusItem(BaseModel):
    key: str
    label: str = ""
    level: StatusLevel = StatusLevel.OK
    details: str = ""


class SystemStatus(BaseModel):
    """Environment health snapshot produced by the status probe."""

    items: List[StatusItem] = Field(default_factory=list)
    overall: StatusLevel = StatusLevel.OK
    overall_label: str = "OK"
    updated_at: Optional[datetime] = None

    def level_for(self, key: str) -> Optional[StatusLevel]:
        wanted = key.strip().lower()
        for item in self.items:
            if item.key.strip().lower() == wanted:
                return item.level
        return None


def compute_overall_level(items: List[StatusItem]) -> StatusLevel:
    overall = StatusLevel.OK
    for item in items:
        if item.level == StatusLevel.ERROR:
            return StatusLevel.ERROR
        if item.level == StatusLevel.WARN:
            overall = StatusLevel.WARN
    return overall


def overall_label(level: StatusLevel) -> str:
    if level == StatusLevel.ERROR:
        return "Errors"
    if level == StatusLevel.WARN:
        return "Warnings"
    return "OK"


def normalize_system_status(status: SystemStatus) -> SystemStatus:
    """Recompute the overall level from items; idempotent."""
    overall = compute_overall_level(status.items)
    return status.model_copy(
        update={
            "overall": overall,
            "overall_label": overall_label(overall),
            "updated_at": status.updated_at or utcnow(),
        }
    )


class ReleaseInfo(BaseModel):
    """Highest release found for a repository."""

    model_config = ConfigDict(frozen=True)

    repo: str
    highest_version: str
    tag: str = ""
    name: str = ""
    url: str = ""
    is_prerelease: bool = False
    fetched_at: Optional[datetime] = None
    source: str = "github_api"


class ExtrasStage(str, Enum):
    SELECT = "select"
    PROGRESS = "progress"
    SUMMARY = "summary"


class ExtrasItemStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class ExtrasPackage(BaseModel):
    """Catalog entry for an optional add-on package."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: str = ""
    versions: List[str] = Field(default_factory=list)
    description: str = ""
    default_install_mode: str = Field(default="", alias="defaultInstallMode")
    default_branch: str = Field(default="", alias="defaultBranch")


class ExtrasSelection(BaseModel):
    name: str
    version: str = ""

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name


class ExtrasItemResult(BaseModel):
    name: str
    status: ExtrasItemStatus = ExtrasItemStatus.PENDING
    message: str = ""


class ExtrasItemDetail(BaseModel):
    name: str
    output: str


class ExtrasState(BaseModel):
    """Snapshot of the extras flow, re-emitted on every change."""

    active: bool = True
    stage: ExtrasStage = ExtrasStage.SELECT
    packages: List[ExtrasPackage] = Field(default_factory=list)
    selections: List[ExtrasSelection] = Field(default_factory=list)
    results: List[ExtrasItemResult] = Field(default_factory=list)
    current: str = ""
    current_index: int = 0
    total: int = 0
    details: List[ExtrasItemDetail] = Field(default_factory=list)


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogEntry(BaseModel):
    """A line recorded by the event logger."""

    timestamp: datetime = Field(default_factory=utcnow)
    level: LogLevel = LogLevel.INFO
    source: str = ""
    step_id: str = ""
    message: str = ""
    fields: Dict[str, str] = Field(default_factory=dict)
