"""The engine's view of the local PHP toolchain."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from ..config import InstallerConfig
from ..errors import ProbeError
from ..models import ExtrasPackage, SystemStatus
from ..utils.cancel import CancelToken
from .database import DatabaseConfig, ProbeResult, parse_probe_output, probe_argv
from .entrypoints import (
    find_bootstrapper,
    find_installer_entry,
    find_system_status_entry,
)
from .extras import EXTRAS_LIST_ARGS, parse_extras_list
from .process import CommandResult, run_command
from .system_status import parse_system_status, system_status_argv

logger = logging.getLogger(__name__)


class PlatformServices(Protocol):
    """External collaborators the install engine depends on."""

    async def php_version(self, cancel: CancelToken) -> str:
        """Return the runtime's ``PHP_VERSION`` string."""

    async def system_status(self, cancel: CancelToken) -> SystemStatus:
        """Run the environment health probe."""

    async def test_database(
        self, work_dir: str, config: DatabaseConfig, cancel: CancelToken
    ) -> ProbeResult:
        """Check connectivity; failures are results, not exceptions."""

    def installer_command(self, args: List[str]) -> List[str]:
        """Full argv for the installer console with ``args`` appended."""

    def bootstrapper(self) -> str:
        """Path of the user-facing bootstrapper script."""

    async def extras_prerequisites(
        self, work_dir: str, cancel: CancelToken
    ) -> Tuple[str, str]:
        """Return ``(core_dir, warning)`` or raise ``ProbeError``."""

    async def list_extras(
        self, core_dir: str, token: str, cancel: CancelToken
    ) -> List[ExtrasPackage]:
        """Fetch the extras catalog."""

    async def run_artisan(
        self, core_dir: str, token: str, args: List[str], cancel: CancelToken
    ) -> CommandResult:
        """Run an artisan command with combined output."""


def _artisan_env(token: str) -> dict[str, str]:
    env = {"CI": "1"}
    if token.strip():
        env["GITHUB_PAT"] = token.strip()
    return env


class PhpPlatform:
    """``PlatformServices`` backed by the real ``php`` executable."""

    def __init__(self, config: Optional[InstallerConfig] = None) -> None:
        self.config = config or InstallerConfig()
        self.php = self.config.php_binary

    async def php_version(self, cancel: CancelToken) -> str:
        result = await run_command(
            [self.php, "-r", "echo PHP_VERSION;"], timeout=30, cancel=cancel
        )
        if not result.ok:
            raise ProbeError(result.stderr.strip() or f"php exited with {result.returncode}")
        return result.stdout.strip()

    async def system_status(self, cancel: CancelToken) -> SystemStatus:
        entry = find_system_status_entry(
            self.config.installer_entry, self.config.bootstrapper_entry
        )
        result = await run_command(
            system_status_argv(self.php, entry),
            timeout=self.config.system_status_timeout,
            cancel=cancel,
        )
        try:
            return parse_system_status(result.stdout)
        except ProbeError:
            if not result.ok and result.stderr.strip():
                raise ProbeError(
                    f"system-status exited with {result.returncode}: {result.stderr.strip()}"
                )
            raise

    async def test_database(
        self, work_dir: str, config: DatabaseConfig, cancel: CancelToken
    ) -> ProbeResult:
        result = await run_command(
            probe_argv(self.php, config), cwd=work_dir or None, timeout=60, cancel=cancel
        )
        if not result.ok:
            detail = result.stderr.strip() or f"exit status {result.returncode}"
            raise ProbeError(f"database probe failed: {detail}")
        return parse_probe_output(result.stdout)

    def installer_command(self, args: List[str]) -> List[str]:
        entry = find_installer_entry(self.config.installer_entry)
        return [self.php, entry, *args]

    def bootstrapper(self) -> str:
        return find_bootstrapper(self.config.bootstrapper_entry)

    async def extras_prerequisites(
        self, work_dir: str, cancel: CancelToken
    ) -> Tuple[str, str]:
        core_dir = Path(work_dir or ".").resolve() / "core"
        artisan = core_dir / "artisan"
        if not artisan.is_file():
            raise ProbeError("missing core/artisan")
        if shutil.which(self.php) is None and not os.path.isfile(self.php):
            raise ProbeError("php executable not found")

        probe = await run_command(
            [self.php, str(artisan), "--version"], cwd=str(core_dir), timeout=10, cancel=cancel
        )
        if probe.ok:
            return str(core_dir), ""
        fallback = await run_command([self.php, "-v"], timeout=5, cancel=cancel)
        if not fallback.ok:
            raise ProbeError(f"unable to run php: exit status {fallback.returncode}")
        return str(core_dir), "Unable to run artisan --version; continuing with php -v."

    async def list_extras(
        self, core_dir: str, token: str, cancel: CancelToken
    ) -> List[ExtrasPackage]:
        result = await self.run_artisan(core_dir, token, EXTRAS_LIST_ARGS, cancel)
        try:
            return parse_extras_list(result.stdout)
        except ProbeError:
            if not result.ok:
                raise ProbeError(
                    f"extras list command failed: exit status {result.returncode} "
                    f"({result.stdout.strip()[:300]})"
                )
            raise

    async def run_artisan(
        self, core_dir: str, token: str, args: List[str], cancel: CancelToken
    ) -> CommandResult:
        artisan = str(Path(core_dir) / "artisan")
        timeout = self.config.extras_list_timeout if args == EXTRAS_LIST_ARGS else None
        return await run_command(
            [self.php, artisan, *args],
            cwd=core_dir,
            env=_artisan_env(token),
            timeout=timeout,
            cancel=cancel,
            merge_stderr=True,
        )
