"""On-disk cache of the last detected release per repository."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from ..models import ReleaseInfo

logger = logging.getLogger(__name__)


class ReleaseCacheFile(BaseModel):
    release: ReleaseInfo


def default_cache_dir() -> Path:
    base = os.getenv("XDG_CACHE_HOME")
    if base:
        return Path(base)
    if os.name == "nt" and os.getenv("LOCALAPPDATA"):
        return Path(os.environ["LOCALAPPDATA"])
    return Path.home() / ".cache"


def safe_repo_name(repo: str) -> str:
    repo = repo.strip() or "unknown"
    for ch in ("/", "\\", " ", ":"):
        repo = repo.replace(ch, "_")
    return repo.strip("_") or "unknown"


def cache_path(repo: str, cache_dir: Optional[Path] = None) -> Path:
    base = Path(cache_dir) if cache_dir else default_cache_dir()
    return base / "evo-installer" / f"release-{safe_repo_name(repo)}.json"


def read_cache(
    repo: str, ttl: timedelta, cache_dir: Optional[Path] = None
) -> Optional[ReleaseInfo]:
    """Return the cached release when it belongs to ``repo`` and is fresh."""

    path = cache_path(repo, cache_dir)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return None
    try:
        cached = ReleaseCacheFile.model_validate_json(raw).release
    except ValidationError:
        logger.debug(f"Ignoring unreadable release cache at {path}")
        return None

    if cached.repo != repo or cached.fetched_at is None:
        return None
    fetched_at = cached.fetched_at
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - fetched_at > ttl:
        return None
    return cached


def write_cache(info: ReleaseInfo, cache_dir: Optional[Path] = None) -> Path:
    path = cache_path(info.repo, cache_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        ReleaseCacheFile(release=info).model_dump_json(indent=2), encoding="utf-8"
    )
    return path
