"""Asking questions over the event/action channels."""

from __future__ import annotations

import logging
from typing import List, Tuple

from ..channels.base import ActionSource
from ..contracts import Action, ActionType
from ..errors import OperationCancelled
from ..models import ExtrasSelection, QuestionKind, QuestionState
from ..services.extras import selections_from_values
from .emitter import EventEmitter

logger = logging.getLogger(__name__)


class Prompter:
    """Emits questions and waits for the matching answer.

    Replies for another question, of the wrong action type, or choosing an
    unknown or disabled option are discarded and the wait continues.
    Cancellation raises ``OperationCancelled``.
    """

    def __init__(self, emitter: EventEmitter, actions: ActionSource) -> None:
        self.emitter = emitter
        self.actions = actions

    async def _next(self) -> Action:
        return await self.actions.receive(self.emitter.cancel)

    async def _ask(self, step_id: str, question: QuestionState) -> None:
        if not await self.emitter.question(step_id, question):
            raise OperationCancelled("event queue unavailable")

    async def select(self, step_id: str, question: QuestionState) -> str:
        if question.kind != QuestionKind.SELECT:
            question = question.model_copy(update={"kind": QuestionKind.SELECT})
        await self._ask(step_id, question)
        while True:
            action = await self._next()
            if action.type != ActionType.ANSWER_SELECT or action.question_id != question.id:
                logger.debug(f"Discarding reply for {action.question_id!r} while waiting on {question.id!r}")
                continue
            option_id = action.option_id.strip()
            option = question.option(option_id)
            if option is None or not option.enabled:
                logger.debug(f"Discarding unusable option {option_id!r} for {question.id!r}")
                continue
            return option_id

    async def input(self, step_id: str, question: QuestionState) -> str:
        if question.kind != QuestionKind.INPUT:
            question = question.model_copy(update={"kind": QuestionKind.INPUT})
        await self._ask(step_id, question)
        while True:
            action = await self._next()
            if action.type != ActionType.ANSWER_INPUT or action.question_id != question.id:
                logger.debug(f"Discarding reply for {action.question_id!r} while waiting on {question.id!r}")
                continue
            return action.text

    async def extras_decision(self, question_id: str) -> Tuple[str, List[ExtrasSelection]]:
        """Wait for an extras decision; the question is the preceding extras event."""
        while True:
            action = await self._next()
            if action.type != ActionType.EXTRAS_DECISION or action.question_id != question_id:
                logger.debug(f"Discarding reply for {action.question_id!r} while waiting on {question_id!r}")
                continue
            if action.extras:
                return action.option_id.strip(), list(action.extras)
            return action.option_id.strip(), selections_from_values(action.values)
