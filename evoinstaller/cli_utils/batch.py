"""Front ends that consume the event stream in a terminal."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

import typer

from ..channels.base import ActionSource
from ..constants import (
    Q_ADMIN_DIRECTORY,
    Q_ADMIN_EMAIL,
    Q_ADMIN_PASSWORD,
    Q_ADMIN_USERNAME,
    Q_DB_DRIVER,
    Q_DB_HOST,
    Q_DB_NAME,
    Q_DB_PASSWORD,
    Q_DB_RETRY,
    Q_DB_SQLITE_PATH,
    Q_DB_USER,
    Q_EXTRAS_PROMPT,
    Q_EXTRAS_SELECT,
    Q_LANGUAGE,
    Q_SELF_UPDATE,
)
from ..contracts import (
    Action,
    Event,
    EventType,
    ExecRequestPayload,
    ExtrasPayload,
)
from ..models import ExtrasStage, ExtrasState, QuestionState
from ..reporting.eventlog import EventLogger
from ..utils.cancel import CancelToken
from .printer import EventPrinter

logger = logging.getLogger(__name__)

MISSING_FLAGS = {
    Q_DB_DRIVER: "--db-type",
    Q_DB_HOST: "--db-host",
    Q_DB_NAME: "--db-name",
    Q_DB_SQLITE_PATH: "--db-name",
    Q_DB_USER: "--db-user",
    Q_DB_PASSWORD: "--db-password",
    Q_ADMIN_USERNAME: "--admin-username",
    Q_ADMIN_EMAIL: "--admin-email",
    Q_ADMIN_PASSWORD: "--admin-password",
    Q_ADMIN_DIRECTORY: "--admin-directory",
    Q_LANGUAGE: "--language",
}


def missing_input_message(question_id: str) -> str:
    flag = MISSING_FLAGS.get(question_id)
    if flag:
        return f"CLI mode is non-interactive; provide {flag} to continue."
    return "CLI mode is non-interactive; missing required input."


@dataclass
class RunOutcome:
    """How a front end saw the run end."""

    failed: bool = False
    cancelled: bool = False
    exec_command: List[str] = field(default_factory=list)


class EventDriver(metaclass=abc.ABCMeta):
    """Consumes events until the engine closes the queue.

    Every event is recorded by the report logger (when given) and printed.
    Questions and the extras selection stage are handed to the subclass.
    """

    def __init__(
        self,
        actions: ActionSource,
        cancel: CancelToken,
        report: Optional[EventLogger] = None,
        quiet: bool = False,
    ) -> None:
        self.actions = actions
        self.cancel = cancel
        self.report = report
        self.printer = EventPrinter(quiet=quiet)
        self.outcome = RunOutcome()

    def send(self, action: Action) -> None:
        if not self.actions.push(action):
            logger.debug(f"Answer for {action.question_id!r} dropped; action queue full")

    async def run(self, events: AsyncIterator[Event]) -> RunOutcome:
        async for event in events:
            if self.report is not None:
                self.report.record(event)
            question = event.question
            if question is not None:
                await self.answer(question)
                continue
            if event.type == EventType.EXTRAS and isinstance(event.payload, ExtrasPayload):
                if event.payload.state.stage == ExtrasStage.SELECT:
                    await self.choose_extras(event.payload.state)
                else:
                    self.printer.show_extras(event.step_id, event.payload.state)
                continue
            if event.type == EventType.EXEC_REQUEST and isinstance(
                event.payload, ExecRequestPayload
            ):
                self.outcome.exec_command = list(event.payload.command)
                continue
            self.printer.show(event)

        # A token cancelled by the driver itself has already marked the failure.
        if self.cancel.cancelled and not self.outcome.failed:
            self.outcome.cancelled = True
        if self.printer.failed or self.outcome.cancelled:
            self.outcome.failed = True
        return self.outcome

    @abc.abstractmethod
    async def answer(self, question: QuestionState) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def choose_extras(self, state: ExtrasState) -> None:
        raise NotImplementedError


class BatchDriver(EventDriver):
    """Non-interactive front end for ``--cli`` runs."""

    async def answer(self, question: QuestionState) -> None:
        if question.id == Q_SELF_UPDATE:
            self.send(Action.select(question.id, "skip"))
            typer.echo("Installer update available; skipping in --cli mode.")
        elif question.id == Q_DB_RETRY:
            self.send(Action.select(question.id, "exit"))
            self.outcome.failed = True
            typer.echo("Database connection failed; exiting (no retry in --cli mode).", err=True)
        elif question.id == Q_EXTRAS_PROMPT:
            self.send(Action.select(question.id, "no"))
        else:
            self.outcome.failed = True
            typer.echo(missing_input_message(question.id), err=True)
            self.cancel.cancel(f"missing input for {question.id}")

    async def choose_extras(self, state: ExtrasState) -> None:
        self.send(Action.extras_decision(Q_EXTRAS_SELECT, "skip"))
