"""Interactive terminal front end."""

from __future__ import annotations

from typing import List, Optional

import typer

from ..constants import Q_EXTRAS_SELECT
from ..contracts import Action
from ..engine.extras import DECISION_INSTALL, DECISION_SKIP
from ..models import ExtrasState, QuestionKind, QuestionOption, QuestionState
from .batch import EventDriver


def default_choice(question: QuestionState) -> int:
    """1-based number of the option offered as default."""
    options = question.options
    if 0 <= question.selected < len(options) and options[question.selected].enabled:
        return question.selected + 1
    for index, option in enumerate(options):
        if option.enabled:
            return index + 1
    return 1


def resolve_choice(question: QuestionState, raw: str) -> Optional[QuestionOption]:
    """Map a typed number or option id to an enabled option."""
    raw = raw.strip()
    if not raw:
        return None
    chosen: Optional[QuestionOption] = None
    if raw.isdigit():
        index = int(raw) - 1
        if 0 <= index < len(question.options):
            chosen = question.options[index]
    else:
        for option in question.options:
            if option.id.lower() == raw.lower():
                chosen = option
                break
    if chosen is None or not chosen.enabled:
        return None
    return chosen


class ConsoleDriver(EventDriver):
    """Answers questions with terminal prompts.

    Prompts are synchronous; the engine is parked waiting for the answer
    while one is open.
    """

    async def answer(self, question: QuestionState) -> None:
        if question.kind == QuestionKind.SELECT:
            self.send(Action.select(question.id, self._select(question)))
        else:
            text = typer.prompt(
                question.prompt,
                default=question.default or "",
                hide_input=question.secret,
                show_default=not question.secret and bool(question.default),
            )
            self.send(Action.input(question.id, text))

    def _select(self, question: QuestionState) -> str:
        typer.echo(question.prompt)
        for index, option in enumerate(question.options, start=1):
            line = f"  {index}) {option.label}"
            if not option.enabled:
                line += f" (unavailable: {option.reason})" if option.reason else " (unavailable)"
            typer.echo(line)
        default = default_choice(question)
        while True:
            raw = typer.prompt("Choose", default=str(default))
            option = resolve_choice(question, str(raw))
            if option is not None:
                return option.id
            typer.secho("Please choose one of the available options.", fg=typer.colors.YELLOW)

    async def choose_extras(self, state: ExtrasState) -> None:
        typer.echo("Available extras:")
        for package in state.packages:
            line = f"  - {package.name}"
            if package.version:
                line += f" ({package.version})"
            if package.description:
                line += f": {package.description}"
            typer.echo(line)
        raw = typer.prompt(
            "Extras to install (name[@version], comma separated; empty to skip)",
            default="",
            show_default=False,
        )
        values: List[str] = [part.strip() for part in str(raw).split(",") if part.strip()]
        if not values:
            self.send(Action.extras_decision(Q_EXTRAS_SELECT, DECISION_SKIP))
            return
        self.send(Action.extras_decision(Q_EXTRAS_SELECT, DECISION_INSTALL, values=values))
