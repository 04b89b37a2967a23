"""Collaborators the engine talks to: PHP runtime, GitHub, filesystem."""

from __future__ import annotations

from .platform import PhpPlatform, PlatformServices
from .process import CommandResult, run_command
from .releases import ReleaseDetector

__all__ = [
    "CommandResult",
    "PhpPlatform",
    "PlatformServices",
    "ReleaseDetector",
    "run_command",
]
