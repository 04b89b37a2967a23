"""Channel factory and initialization."""

from __future__ import annotations

from typing import Optional, Tuple

from ..config import InstallerConfig
from .base import ActionSource, EventSink
from .inmemory import InMemoryActionChannel, InMemoryEventChannel


def open_channels(
    config: Optional[InstallerConfig] = None,
) -> Tuple[InMemoryEventChannel, InMemoryActionChannel]:
    """Create the bounded event and action queues for one run."""

    config = config or InstallerConfig()
    return (
        InMemoryEventChannel(maxsize=config.event_buffer),
        InMemoryActionChannel(maxsize=config.action_buffer),
    )


__all__ = [
    "ActionSource",
    "EventSink",
    "InMemoryActionChannel",
    "InMemoryEventChannel",
    "open_channels",
]
