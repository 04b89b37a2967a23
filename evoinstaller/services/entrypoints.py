"""Locating the PHP scripts the installer shells out to."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..errors import EntryPointNotFound

logger = logging.getLogger(__name__)

_SYMFONY_MARKERS = (
    "EvolutionCMS\\\\Installer\\\\Application",
    "Internal PHP CLI entrypoint",
    "Symfony Console",
)


def _read_head(path: Path, size: int) -> str:
    try:
        with open(path, "rb") as f:
            return f.read(size).decode("utf-8", errors="replace")
    except OSError:
        return ""


def looks_like_php_script(path: Path) -> bool:
    head = _read_head(path, 256).lower()
    if "<?php" in head:
        return True
    return head.startswith("#!") and "php" in head


def looks_like_symfony_entry(path: Path) -> bool:
    if path.as_posix().endswith("/installer/bin/evo"):
        return True
    head = _read_head(path, 2048)
    return any(marker in head for marker in _SYMFONY_MARKERS)


def _launcher_dir() -> Path:
    return Path(sys.argv[0] or ".").resolve().parent


def _first_match(candidates: Iterable[Path], symfony: bool) -> Optional[Path]:
    for candidate in candidates:
        if not candidate.is_file() or not looks_like_php_script(candidate):
            continue
        if symfony and not looks_like_symfony_entry(candidate):
            continue
        return candidate.resolve()
    return None


def installer_entry_candidates() -> List[Path]:
    here = _launcher_dir()
    base = here.parent
    return [
        base / "installer" / "bin" / "evo",
        here / "installer" / "bin" / "evo",
        base.parent / "installer" / "bin" / "evo",
        Path("installer") / "bin" / "evo",
    ]


def bootstrapper_candidates() -> List[Path]:
    candidates = [_launcher_dir() / "evo"]
    on_path = shutil.which("evo")
    if on_path:
        candidates.append(Path(on_path))
    candidates.append(Path("bin") / "evo")
    return candidates


def find_installer_entry(explicit: Optional[str] = None) -> str:
    """Return the internal console entry script (``installer/bin/evo``)."""

    if explicit:
        path = Path(explicit).expanduser()
        if path.is_file():
            return str(path.resolve())
        raise EntryPointNotFound(f"configured installer entry does not exist: {explicit}")
    found = _first_match(installer_entry_candidates(), symfony=True)
    if found is None:
        raise EntryPointNotFound(
            "unable to find the PHP installer entry (expected installer/bin/evo); "
            "ensure the installer package files are present"
        )
    return str(found)


def find_bootstrapper(explicit: Optional[str] = None) -> str:
    """Return the user-facing ``evo`` bootstrapper script."""

    if explicit:
        path = Path(explicit).expanduser()
        if path.is_file():
            return str(path.resolve())
        raise EntryPointNotFound(f"configured bootstrapper does not exist: {explicit}")
    candidates = bootstrapper_candidates()
    found = _first_match(candidates, symfony=False)
    if found is None:
        tried = ", ".join(str(c) for c in candidates)
        raise EntryPointNotFound(f"unable to find PHP bootstrapper entry (tried: {tried})")
    return str(found)


def find_system_status_entry(
    installer_entry: Optional[str] = None, bootstrapper: Optional[str] = None
) -> str:
    """Prefer the full console entry, falling back to the bootstrapper."""

    try:
        return find_installer_entry(installer_entry)
    except EntryPointNotFound:
        logger.debug("Installer entry not found; trying bootstrapper for system-status")
    return find_bootstrapper(bootstrapper)


def detect_existing_install(directory: str) -> Tuple[bool, str]:
    """Return ``(found, marker)`` for an existing platform install in ``directory``."""

    root = Path(directory or ".")
    if not root.is_dir():
        return False, ""
    if (root / "core" / ".install").is_file():
        return True, "core/.install"
    if (root / "core").is_dir() and (root / "manager").is_dir() and (root / "index.php").is_file():
        return True, "core/ + manager/ + index.php"
    return False, ""


def is_windows() -> bool:
    return os.name == "nt"
