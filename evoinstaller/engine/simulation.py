"""A self-contained engine that replays a plausible install for demos and tests."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional

from ..channels.base import ActionSource
from ..config import InstallerConfig
from ..constants import QUEST_STEPS, STEP_RELEASE, STEP_SYSTEM_STATUS, step_label
from ..models import StatusItem, StatusLevel, SystemStatus, normalize_system_status
from ..utils.cancel import CancelToken, wait_or_cancel
from .base import BaseEngine
from .emitter import EventEmitter

logger = logging.getLogger(__name__)

TICK_SECONDS = 0.12


class SimulationEngine(BaseEngine):
    """Emits the same event shapes as a real install without touching the system.

    ``speed`` divides every delay; ``fail_step`` (1-based quest step) makes
    the run stop with an error before that step starts.
    """

    source = "mock"

    def __init__(
        self, config: Optional[InstallerConfig] = None, seed: Optional[int] = None
    ) -> None:
        self.config = config or InstallerConfig()
        self.speed = max(self.config.simulation.speed, 0.01)
        self.fail_step = self.config.simulation.fail_step
        self.rng = random.Random(seed)

    async def _sleep(self, cancel: CancelToken) -> None:
        await wait_or_cancel(asyncio.sleep(TICK_SECONDS / self.speed), cancel)

    async def _run(
        self, emitter: EventEmitter, actions: ActionSource, cancel: CancelToken
    ) -> None:
        await emitter.steps(QUEST_STEPS)

        await emitter.step_start(STEP_RELEASE)
        await emitter.log(STEP_RELEASE, "Fetching releases…")
        for pct in (0, 50, 100):
            await emitter.progress(STEP_RELEASE, pct)
            await self._sleep(cancel)
        await emitter.log(STEP_RELEASE, "Highest stable release: simulated")
        await emitter.step_done(STEP_RELEASE, True)

        await emitter.step_start(STEP_SYSTEM_STATUS)
        await emitter.log(STEP_SYSTEM_STATUS, "Checking system status…")
        status = normalize_system_status(
            SystemStatus(
                items=[
                    StatusItem(key="php", label="PHP version", level=StatusLevel.OK),
                    StatusItem(key="pdo", label="PDO", level=StatusLevel.OK),
                    StatusItem(key="pdo_sqlite", label="PDO SQLite", level=StatusLevel.OK),
                ]
            )
        )
        await emitter.system_status(STEP_SYSTEM_STATUS, status)
        await emitter.step_done(STEP_SYSTEM_STATUS, True)

        for index, step_id in enumerate(QUEST_STEPS, start=1):
            if self.fail_step == index:
                logger.info(f"Simulating failure on step {index}")
                await emitter.error(step_id, f"Simulated failure on step {index}")
                return
            await emitter.step_start(step_id)
            await emitter.log(step_id, f"{step_label(step_id)}…")

            current = 0
            while current < 100:
                await self._sleep(cancel)
                current = min(100, current + 10 + self.rng.randint(0, 11))
                await emitter.progress(step_id, current)
                if self.rng.randint(0, 24) == 0:
                    await emitter.warn(step_id, "Non-critical warning (simulated)")
            await emitter.step_done(step_id, True)
