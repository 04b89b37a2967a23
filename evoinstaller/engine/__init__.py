"""Engine factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import InstallerConfig, InstallOptions, load_config
from .base import BaseEngine
from .install import InstallEngine
from .simulation import SimulationEngine


def get_engine(
    options: InstallOptions,
    config: Optional[InstallerConfig] = None,
    backend: Optional[str] = None,
) -> BaseEngine:
    """Factory function to get the configured engine."""

    config = config or load_config()
    backend = (backend or os.getenv("EVO_ENGINE") or config.engine).strip().lower()

    if backend == "install":
        return InstallEngine(options, config)
    elif backend in ("simulation", "mock"):
        return SimulationEngine(config)
    else:
        raise ValueError(f"Unsupported engine backend: {backend}")


__all__ = ["BaseEngine", "InstallEngine", "SimulationEngine", "get_engine"]
