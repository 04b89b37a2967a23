"""Extras catalog parsing, selection normalization and output inspection."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..errors import ProbeError
from ..models import ExtrasPackage, ExtrasSelection

DETAIL_TAIL_LINES = 24
NO_OUTPUT = "(no output captured)"

FAILURE_HINTS = (
    "the limit that is provided for free use of github has been exceeded",
    "github api rate limit exceeded",
    "api rate limit exceeded",
    "rate limit exceeded",
    "authentication required",
    "requires authentication",
    "could not open input file",
    "no composer.json",
    "your requirements could not be resolved",
    "could not resolve host",
    "failed to download",
    "failed to open stream",
)

# Reported by a successful no-op composer run; never a failure on its own.
BENIGN_LINES = ("package operations: 0 installs, 0 updates, 0 removals",)


def parse_extras_list(raw: Union[str, bytes]) -> List[ExtrasPackage]:
    """Parse ``artisan extras --list --json`` output.

    Accepts a wrapped ``{"ok", "error", "packages"}`` document or a bare
    array of packages. A wrapped ``ok: false`` is an error.
    """

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    text = text.strip()
    if not text:
        raise ProbeError("empty extras list JSON")
    try:
        data: Any = json.loads(text)
    except ValueError as exc:
        raise ProbeError("unable to parse extras list JSON") from exc

    entries: Any = None
    if isinstance(data, dict):
        if data.get("ok") is False:
            raise ProbeError(str(data.get("error") or "").strip() or "extras list returned ok=false")
        entries = data.get("packages")
    elif isinstance(data, list):
        entries = data

    if not entries or not isinstance(entries, list):
        raise ProbeError("unable to parse extras list JSON")
    packages: List[ExtrasPackage] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            packages.append(ExtrasPackage.model_validate(entry))
        except ValidationError:
            continue
    return sanitize_extras_packages(packages)


def sanitize_extras_packages(packages: Iterable[ExtrasPackage]) -> List[ExtrasPackage]:
    clean: List[ExtrasPackage] = []
    for pkg in packages:
        name = pkg.name.strip()
        if not name:
            continue
        versions: List[str] = []
        for version in pkg.versions:
            version = (version or "").strip()
            if version and version not in versions:
                versions.append(version)
        clean.append(
            ExtrasPackage(
                name=name,
                version=pkg.version.strip(),
                versions=versions,
                description=pkg.description.strip(),
                default_install_mode=pkg.default_install_mode.strip(),
                default_branch=pkg.default_branch.strip(),
            )
        )
    return clean


def split_selection_value(value: str) -> Tuple[str, str]:
    name, _, version = value.partition("@")
    return name.strip(), version.strip()


def selections_from_values(values: Iterable[str]) -> List[ExtrasSelection]:
    """Turn ``name`` / ``name@version`` strings into selections."""
    selections: List[ExtrasSelection] = []
    for value in values:
        value = (value or "").strip()
        if not value:
            continue
        name, version = split_selection_value(value)
        if name:
            selections.append(ExtrasSelection(name=name, version=version))
    return selections


def default_extras_version(pkg: ExtrasPackage) -> str:
    mode = pkg.default_install_mode.strip().lower()
    version = pkg.version.strip()
    branch = pkg.default_branch.strip()
    if mode == "latest-release" and version:
        return version
    if mode == "default-branch" and branch:
        return branch
    if version:
        return version
    if branch:
        return branch
    for candidate in pkg.versions:
        if candidate.strip():
            return candidate.strip()
    return ""


def normalize_extras_selections(
    packages: List[ExtrasPackage], selections: List[ExtrasSelection]
) -> List[ExtrasSelection]:
    """Keep catalog names only, merge duplicates and fill default versions."""

    by_name: Dict[str, ExtrasPackage] = {p.name: p for p in packages if p.name}
    result: List[ExtrasSelection] = []
    seen: Dict[str, int] = {}
    for selection in selections:
        name = selection.name.strip()
        if not name or name not in by_name:
            continue
        version = selection.version.strip() or default_extras_version(by_name[name])
        if name in seen:
            existing = result[seen[name]]
            if not existing.version and version:
                result[seen[name]] = ExtrasSelection(name=name, version=version)
            continue
        seen[name] = len(result)
        result.append(ExtrasSelection(name=name, version=version))
    return result


def _lines(output: str) -> List[str]:
    return output.replace("\r\n", "\n").split("\n")


def last_non_empty_line(output: str) -> str:
    for line in reversed(_lines(output)):
        if line.strip():
            return line.strip()
    return ""


def tail_output(output: str, max_lines: int = DETAIL_TAIL_LINES) -> str:
    if max_lines <= 0:
        return ""
    chunk = [line.rstrip("\r") for line in _lines(output)[-max_lines:]]
    return "\n".join(chunk).strip()


def detect_extras_failure(output: str) -> Optional[str]:
    """Return the line that signals a failed package install, scanning upward."""

    for raw in reversed(_lines(output)):
        line = raw.strip()
        if not line:
            continue
        lower = line.lower()
        if any(benign in lower for benign in BENIGN_LINES):
            continue
        if any(hint in lower for hint in FAILURE_HINTS):
            return line
        if lower.startswith("fatal:") or lower.startswith("error:"):
            return line
        if "exception" in lower:
            return line
    return None


def extras_install_args(selection: ExtrasSelection) -> List[str]:
    args = ["extras", "extras", selection.name]
    if selection.version.strip():
        args.append(selection.version.strip())
    args.extend(["--no-ansi", "--no-interaction"])
    return args


EXTRAS_LIST_ARGS = ["extras", "--list", "--json", "--no-ansi", "--no-interaction"]
MIGRATE_ARGS = ["migrate", "--force"]
CACHE_CLEAR_ARGS = ["cache:clear-full"]
