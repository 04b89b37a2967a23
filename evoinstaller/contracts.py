"""Event and action contracts exchanged between the engine and its consumers."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    ExtrasSelection,
    ExtrasState,
    QuestionState,
    ReleaseInfo,
    StepState,
    SystemStatus,
    utcnow,
)


class EventType(str, Enum):
    STEPS = "steps"
    STEP_START = "step_start"
    STEP_DONE = "step_done"
    PROGRESS = "progress"
    LOG = "log"
    SYSTEM_STATUS = "system_status"
    WARNING = "warning"
    ERROR = "error"
    EXEC_REQUEST = "exec_request"
    EXTRAS = "extras"


class Severity(str, Enum):
    TRACE = "trace"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class StepsPayload(BaseModel):
    kind: Literal["steps"] = "steps"
    steps: List[StepState] = Field(default_factory=list)


class StepStartPayload(BaseModel):
    kind: Literal["step_start"] = "step_start"
    label: str
    index: int
    total: int


class StepDonePayload(BaseModel):
    kind: Literal["step_done"] = "step_done"
    ok: bool
    release: Optional[ReleaseInfo] = None


class ProgressPayload(BaseModel):
    kind: Literal["progress"] = "progress"
    current: int
    total: int
    unit: str = ""


class LogPayload(BaseModel):
    """Free text with optional key/value fields.

    Consumers interpret a handful of reserved field keys: ``op`` asks to
    replace the previous line (``replace_last``) or the previous inline
    progress line with the same ``progress_key`` (``replace_last_if_same``).
    """

    kind: Literal["log"] = "log"
    message: str
    fields: Dict[str, str] = Field(default_factory=dict)


class QuestionPayload(BaseModel):
    kind: Literal["question"] = "question"
    question: QuestionState


class SystemStatusPayload(BaseModel):
    kind: Literal["system_status"] = "system_status"
    status: SystemStatus


class ExtrasPayload(BaseModel):
    kind: Literal["extras"] = "extras"
    state: ExtrasState


class ExecRequestPayload(BaseModel):
    kind: Literal["exec_request"] = "exec_request"
    command: List[str]


EventPayload = Annotated[
    Union[
        StepsPayload,
        StepStartPayload,
        StepDonePayload,
        ProgressPayload,
        LogPayload,
        QuestionPayload,
        SystemStatusPayload,
        ExtrasPayload,
        ExecRequestPayload,
    ],
    Field(discriminator="kind"),
]


class Event(BaseModel):
    """Immutable record emitted by the engine."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    step_id: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    source: str = ""
    severity: Severity = Severity.INFO
    payload: Optional[EventPayload] = None

    @property
    def question(self) -> Optional[QuestionState]:
        if isinstance(self.payload, QuestionPayload):
            return self.payload.question
        return None

    @property
    def message(self) -> str:
        if isinstance(self.payload, LogPayload):
            return self.payload.message
        return ""

    @property
    def fields(self) -> Dict[str, str]:
        if isinstance(self.payload, LogPayload):
            return self.payload.fields
        return {}

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Event":
        return cls.model_validate_json(data)


class ActionType(str, Enum):
    ANSWER_SELECT = "answer_select"
    ANSWER_INPUT = "answer_input"
    EXTRAS_DECISION = "extras_decision"


class Action(BaseModel):
    """A consumer reply correlated to a question by ``question_id``."""

    model_config = ConfigDict(frozen=True)

    type: ActionType
    question_id: str
    option_id: str = ""
    text: str = ""
    values: List[str] = Field(default_factory=list)
    extras: List[ExtrasSelection] = Field(default_factory=list)

    @classmethod
    def select(cls, question_id: str, option_id: str) -> "Action":
        return cls(type=ActionType.ANSWER_SELECT, question_id=question_id, option_id=option_id)

    @classmethod
    def input(cls, question_id: str, text: str) -> "Action":
        return cls(type=ActionType.ANSWER_INPUT, question_id=question_id, text=text)

    @classmethod
    def extras_decision(
        cls,
        question_id: str,
        option_id: str,
        extras: Optional[List[ExtrasSelection]] = None,
        values: Optional[List[str]] = None,
    ) -> "Action":
        return cls(
            type=ActionType.EXTRAS_DECISION,
            question_id=question_id,
            option_id=option_id,
            extras=list(extras or []),
            values=list(values or []),
        )
