"""Async command execution with consistent logging."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from ..errors import OperationCancelled
from ..utils.cancel import CancelToken, wait_or_cancel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stdout first."""
        parts = [p for p in (self.stdout, self.stderr) if p]
        return "\n".join(parts)


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def merged_env(extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    env = dict(os.environ)
    env.update(extra or {})
    return env


async def kill_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


async def run_command(
    argv: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    cancel: Optional[CancelToken] = None,
    merge_stderr: bool = False,
) -> CommandResult:
    """Run a command to completion and capture its output.

    A missing executable propagates as ``OSError``. A timeout kills the
    process and returns a result with ``timed_out`` set. Cancellation kills
    the process and raises ``OperationCancelled``.
    """

    argv_list = list(argv)
    logger.debug(f"CMD {format_argv(argv_list[:2])} ...")
    if cancel is not None:
        cancel.raise_if_cancelled()

    process = await asyncio.create_subprocess_exec(
        *argv_list,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
        cwd=cwd or None,
        env=merged_env(env),
    )
    try:
        if cancel is not None:
            cancel.raise_if_cancelled()
            stdout, stderr = await wait_or_cancel(
                asyncio.wait_for(process.communicate(), timeout=timeout), cancel
            )
        else:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await kill_process(process)
        logger.warning(f"Command timed out after {timeout}s: {argv_list[0]}")
        return CommandResult(argv_list, -1, "", "", timed_out=True)
    except OperationCancelled:
        await kill_process(process)
        raise

    result = CommandResult(
        argv=argv_list,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=(stdout or b"").decode("utf-8", errors="replace"),
        stderr=(stderr or b"").decode("utf-8", errors="replace"),
    )
    if result.returncode != 0:
        logger.debug(f"Command exited with {result.returncode}: {argv_list[0]}")
    return result
