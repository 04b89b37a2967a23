"""Shared fakes for engine tests."""

import asyncio
import sys
from typing import Dict, List, Optional

import pytest

from evoinstaller.channels import open_channels
from evoinstaller.contracts import Event, EventType, ExtrasPayload
from evoinstaller.errors import ProbeError
from evoinstaller.models import (
    ExtrasPackage,
    ExtrasStage,
    ReleaseInfo,
    StatusItem,
    StatusLevel,
    SystemStatus,
    normalize_system_status,
)
from evoinstaller.services.database import ProbeResult
from evoinstaller.services.process import CommandResult
from evoinstaller.utils.cancel import CancelToken

SUCCESS_SCRIPT = """
print("Downloading Evolution CMS")
print("<info>Evolution CMS downloaded and extracted successfully</info>")
print("Running database migrations")
print("Running database seeders")
print("All seeders completed successfully")
print("Updating dependencies with Composer")
print("Loading composer repositories with package information")
print("Dependencies updated successfully")
print("Finalizing installation")
print("Installation finalized successfully")
"""


def status_with(*keys: str) -> SystemStatus:
    items = [StatusItem(key=key, label=key, level=StatusLevel.OK) for key in keys]
    return normalize_system_status(SystemStatus(items=items))


class FakePlatform:
    """In-memory ``PlatformServices`` with scriptable outcomes."""

    def __init__(self) -> None:
        self.version = "8.3.4"
        self.version_error: Optional[Exception] = None
        self.status = status_with("php", "pdo", "pdo_sqlite", "pdo_mysql")
        self.status_error: Optional[Exception] = None
        self.db_results: List[ProbeResult] = [ProbeResult(ok=True)]
        self.db_error: Optional[Exception] = None
        self.db_calls = []
        self.script = SUCCESS_SCRIPT
        self.installer_args: List[str] = []
        self.entry_error: Optional[Exception] = None
        self.bootstrapper_path = "/opt/evo/bin/evo"
        self.bootstrapper_error: Optional[Exception] = None
        self.prereq_error: Optional[Exception] = ProbeError("missing core/artisan")
        self.prereq_warning = ""
        self.packages: List[ExtrasPackage] = [
            ExtrasPackage(name="sSeo", version="1.2.0", description="SEO tools"),
            ExtrasPackage(name="sLang", version="2.0.1"),
        ]
        self.list_error: Optional[Exception] = None
        self.artisan_output: Dict[str, CommandResult] = {}
        self.artisan_calls: List[List[str]] = []

    async def php_version(self, cancel):
        if self.version_error is not None:
            raise self.version_error
        return self.version

    async def system_status(self, cancel):
        if self.status_error is not None:
            raise self.status_error
        return self.status

    async def test_database(self, work_dir, config, cancel):
        self.db_calls.append(config)
        if self.db_error is not None:
            raise self.db_error
        if len(self.db_results) > 1:
            return self.db_results.pop(0)
        return self.db_results[0]

    def installer_command(self, args):
        if self.entry_error is not None:
            raise self.entry_error
        self.installer_args = list(args)
        return [sys.executable, "-c", self.script]

    def bootstrapper(self):
        if self.bootstrapper_error is not None:
            raise self.bootstrapper_error
        return self.bootstrapper_path

    async def extras_prerequisites(self, work_dir, cancel):
        if self.prereq_error is not None:
            raise self.prereq_error
        return f"{work_dir}/core", self.prereq_warning

    async def list_extras(self, core_dir, token, cancel):
        if self.list_error is not None:
            raise self.list_error
        return list(self.packages)

    async def run_artisan(self, core_dir, token, args, cancel):
        self.artisan_calls.append(list(args))
        key = " ".join(args[:3])
        result = self.artisan_output.get(key)
        if result is None:
            return CommandResult(argv=list(args), returncode=0, stdout="done", stderr="")
        return result


class FakeReleases:
    """Stand-in for ``ReleaseDetector`` without network access."""

    def __init__(
        self,
        info: Optional[ReleaseInfo] = None,
        installer: Optional[ReleaseInfo] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.info = info or ReleaseInfo(
            repo="evolution-cms/evolution", highest_version="3.5.2", tag="v3.5.2"
        )
        self.installer = installer
        self.error = error

    async def detect_highest_stable(
        self,
        owner,
        repo,
        max_pages=3,
        cache_ttl=None,
        include_prerelease=False,
        on_page_fetched=None,
    ):
        if repo == "installer":
            if self.installer is None:
                raise ProbeError("no installer releases")
            return self.installer, False
        if self.error is not None:
            raise self.error
        if on_page_fetched is not None:
            await on_page_fetched(1)
        return self.info, False

    async def latest_release(self, owner, repo):
        raise ProbeError("latest release unavailable")


async def run_scripted(engine, answers=None, cancel=None, timeout=30.0) -> List[Event]:
    """Run ``engine`` and answer its questions from ``answers``.

    ``answers`` maps a question id to an ``Action`` or a list of them, used
    in order. The extras selection uses the ``extras_select`` key.
    """

    answers = {k: (list(v) if isinstance(v, list) else [v]) for k, v in (answers or {}).items()}
    events, actions = open_channels()
    cancel = cancel or CancelToken()
    seen: List[Event] = []

    def reply(key: str) -> None:
        queue = answers.get(key)
        if not queue:
            cancel.cancel(f"unexpected question {key}")
            raise AssertionError(f"no scripted answer for {key!r}")
        actions.push(queue.pop(0) if len(queue) > 1 else queue[0])

    async def consume() -> None:
        async for event in events:
            seen.append(event)
            if event.question is not None:
                reply(event.question.id)
            elif (
                event.type == EventType.EXTRAS
                and isinstance(event.payload, ExtrasPayload)
                and event.payload.state.stage == ExtrasStage.SELECT
            ):
                reply("extras_select")

    await asyncio.wait_for(
        asyncio.gather(engine.run(events, actions, cancel), consume()), timeout=timeout
    )
    return seen


def of_type(events: List[Event], type: EventType, step_id: Optional[str] = None) -> List[Event]:
    return [e for e in events if e.type == type and (step_id is None or e.step_id == step_id)]


def messages(events: List[Event], step_id: Optional[str] = None) -> List[str]:
    return [e.message for e in events if e.message and (step_id is None or e.step_id == step_id)]


def done_events(events: List[Event]) -> Dict[str, List[Event]]:
    grouped: Dict[str, List[Event]] = {}
    for event in of_type(events, EventType.STEP_DONE):
        grouped.setdefault(event.step_id, []).append(event)
    return grouped


@pytest.fixture
def fake_platform():
    return FakePlatform()


@pytest.fixture
def fake_releases():
    return FakeReleases()


