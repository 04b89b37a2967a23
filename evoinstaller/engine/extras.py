"""Optional add-on package installation after the core install."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..channels.base import ActionSource
from ..constants import Q_EXTRAS_PROMPT, Q_EXTRAS_SELECT, STEP_EXTRAS
from ..contracts import Severity
from ..errors import ProbeError
from ..models import (
    ExtrasItemDetail,
    ExtrasItemResult,
    ExtrasItemStatus,
    ExtrasPackage,
    ExtrasSelection,
    ExtrasStage,
    ExtrasState,
    QuestionKind,
    QuestionOption,
    QuestionState,
)
from ..services.extras import (
    CACHE_CLEAR_ARGS,
    MIGRATE_ARGS,
    NO_OUTPUT,
    detect_extras_failure,
    extras_install_args,
    last_non_empty_line,
    normalize_extras_selections,
    tail_output,
)
from ..services.platform import PlatformServices
from ..services.process import CommandResult
from .emitter import EventEmitter
from .prompts import Prompter

logger = logging.getLogger(__name__)

SOURCE = "extras"
DECISION_INSTALL = "install"
DECISION_SKIP = "skip"


def extras_prompt_question() -> QuestionState:
    return QuestionState(
        id=Q_EXTRAS_PROMPT,
        kind=QuestionKind.SELECT,
        prompt="Do you want to install additional packages (Extras) now?",
        options=[QuestionOption(id="yes", label="Yes"), QuestionOption(id="no", label="No")],
        selected=0,
    )


def _message_or_exit(message: str, result: CommandResult) -> str:
    if message:
        return message
    if result.timed_out:
        return "command timed out"
    return f"exit status {result.returncode}"


class ExtrasFlow:
    """Sub-workflow that lets the user pick and install extras.

    Runs under the ``extras`` step and always finishes it exactly once. The
    step is ok only when no install or finishing command reported an error.
    """

    def __init__(
        self,
        emitter: EventEmitter,
        actions: ActionSource,
        platform: PlatformServices,
        preselected: Optional[List[ExtrasSelection]] = None,
        token: str = "",
        fail_fast: bool = False,
    ) -> None:
        self.emitter = emitter
        self.prompter = Prompter(emitter, actions)
        self.platform = platform
        self.preselected = list(preselected or [])
        self.token = token.strip()
        self.fail_fast = fail_fast
        self.ok = True
        self._core_dir = ""

    async def _log(self, message: str) -> None:
        await self.emitter.log(STEP_EXTRAS, message, source=SOURCE)

    async def _warn(self, message: str) -> None:
        await self.emitter.warn(STEP_EXTRAS, message, source=SOURCE)

    async def _state(self, state: ExtrasState) -> None:
        await self.emitter.extras(STEP_EXTRAS, state, source=SOURCE)

    async def _skipped_summary(self) -> None:
        await self._state(
            ExtrasState(
                active=True,
                stage=ExtrasStage.SUMMARY,
                results=[
                    ExtrasItemResult(name="Extras skipped", status=ExtrasItemStatus.SUCCESS)
                ],
            )
        )

    async def run(self, work_dir: str) -> bool:
        await self.emitter.step_start(STEP_EXTRAS, source=SOURCE)
        try:
            await self._run(work_dir)
        except Exception:
            self.ok = False
            raise
        finally:
            if STEP_EXTRAS in self.emitter.open_steps:
                await self.emitter.step_done(
                    STEP_EXTRAS,
                    self.ok,
                    severity=Severity.INFO if self.ok else Severity.WARN,
                    source=SOURCE,
                )
        return self.ok

    async def _run(self, work_dir: str) -> None:
        try:
            core_dir, warning = await self.platform.extras_prerequisites(
                work_dir, self.emitter.cancel
            )
        except (ProbeError, OSError) as exc:
            await self._warn(f"Extras install skipped: {exc}")
            self.ok = False
            return
        self._core_dir = core_dir
        if warning:
            await self._warn(warning)

        if not self.preselected:
            choice = await self.prompter.select(STEP_EXTRAS, extras_prompt_question())
            if choice != "yes":
                await self._log("Skipping extras installation.")
                await self._skipped_summary()
                return

        await self._log("Fetching extras list...")
        packages: List[ExtrasPackage] = []
        try:
            packages = await self.platform.list_extras(core_dir, self.token, self.emitter.cancel)
        except (ProbeError, OSError) as exc:
            await self._warn(f"Extras list unavailable: {exc}")
            self.ok = False
            if not self.preselected:
                return
        else:
            if not packages:
                await self._warn("Extras list unavailable.")
                self.ok = False
                if not self.preselected:
                    return

        if self.preselected:
            selections = list(self.preselected)
        else:
            await self._state(
                ExtrasState(active=True, stage=ExtrasStage.SELECT, packages=packages)
            )
            decision, selections = await self.prompter.extras_decision(Q_EXTRAS_SELECT)
            if decision != DECISION_INSTALL or not selections:
                await self._state(ExtrasState(active=False))
                await self._log("Extras installation skipped.")
                await self._skipped_summary()
                return

        if packages:
            selections = normalize_extras_selections(packages, selections)
        if not selections:
            await self._warn("No valid extras selected; skipping.")
            await self._state(ExtrasState(active=False))
            self.ok = False
            return

        labels = ", ".join(str(s) for s in selections)
        if self.preselected:
            await self._log(f"Extras preselected: {labels}")
        await self._log(f"Installing extras: {labels}")
        await self._install(selections)

    async def _install(self, selections: List[ExtrasSelection]) -> None:
        state = ExtrasState(
            active=True,
            stage=ExtrasStage.PROGRESS,
            selections=selections,
            results=[ExtrasItemResult(name=str(s)) for s in selections],
            total=len(selections),
        )
        await self._state(state)

        aborted = False
        for index, selection in enumerate(selections):
            label = str(selection)
            state.current = label
            state.current_index = index + 1
            state.results[index].status = ExtrasItemStatus.RUNNING
            await self._state(state)

            result = await self._run_artisan(label, extras_install_args(selection))
            failure = detect_extras_failure(result.stdout)
            item = state.results[index]
            if not result.ok or failure:
                item.status = ExtrasItemStatus.ERROR
                item.message = failure or _message_or_exit(last_non_empty_line(result.stdout), result)
                logger.warning(f"Extras package {label} failed: {item.message}")
            else:
                item.status = ExtrasItemStatus.SUCCESS
            detail = tail_output(result.stdout) or NO_OUTPUT
            state.details.append(ExtrasItemDetail(name=label, output=detail))
            await self._state(state)

            if item.status == ExtrasItemStatus.ERROR and self.fail_fast:
                aborted = True
                break

        if not aborted:
            for label, args in (
                ("artisan migrate", MIGRATE_ARGS),
                ("artisan cache:clear-full", CACHE_CLEAR_ARGS),
            ):
                await self._finishing_command(state, label, args, len(selections))

        state.stage = ExtrasStage.SUMMARY
        state.current = ""
        await self._state(state)
        if any(r.status == ExtrasItemStatus.ERROR for r in state.results):
            self.ok = False

    async def _finishing_command(
        self, state: ExtrasState, label: str, args: List[str], index: int
    ) -> None:
        item = ExtrasItemResult(name=label, status=ExtrasItemStatus.RUNNING)
        state.results.append(item)
        state.current = label
        state.current_index = index
        await self._state(state)

        result = await self._run_artisan(label, args)
        if result.ok:
            item.status = ExtrasItemStatus.SUCCESS
        else:
            item.status = ExtrasItemStatus.ERROR
            item.message = _message_or_exit(last_non_empty_line(result.stdout), result)
        if result.stdout.strip():
            state.details.append(ExtrasItemDetail(name=label, output=tail_output(result.stdout)))
        await self._state(state)

    async def _run_artisan(self, label: str, args: List[str]) -> CommandResult:
        try:
            result = await self.platform.run_artisan(
                self._core_dir, self.token, args, self.emitter.cancel
            )
        except OSError as exc:
            result = CommandResult(argv=list(args), returncode=-1, stdout=str(exc), stderr="")
        for line in result.stdout.replace("\r\n", "\n").split("\n"):
            line = line.strip()
            if line:
                await self._log(f"{label}: {line}")
        return result
