"""Terminal front ends for the install engine."""

from .batch import BatchDriver, EventDriver, RunOutcome
from .console import ConsoleDriver
from .options import apply_batch_defaults, parse_extras
from .postexec import run_post_exec

__all__ = [
    "BatchDriver",
    "ConsoleDriver",
    "EventDriver",
    "RunOutcome",
    "apply_batch_defaults",
    "parse_extras",
    "run_post_exec",
]
