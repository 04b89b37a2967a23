"""Release metadata lookups against the GitHub REST API."""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from ..errors import ProbeError
from ..models import ReleaseInfo, utcnow
from ..versions import SemanticVersion
from .release_cache import read_cache, write_cache

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
REQUEST_TIMEOUT = 12.0


class GitHubRelease(BaseModel):
    tag_name: str = ""
    name: Optional[str] = ""
    html_url: str = ""
    draft: bool = False
    prerelease: bool = False


_RELEASE_LIST = TypeAdapter(List[GitHubRelease])


def _headers(token: Optional[str]) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def fetch_releases_page(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    page: int,
    token: Optional[str] = None,
) -> List[GitHubRelease]:
    """Fetch one page (up to 100 entries) of a repository's releases."""

    response = await client.get(
        f"{GITHUB_API}/repos/{owner}/{repo}/releases",
        params={"per_page": 100, "page": max(page, 1)},
        headers=_headers(token),
    )
    if response.status_code < 200 or response.status_code >= 300:
        raise ProbeError(f"github releases: {response.status_code} {response.reason_phrase}")
    try:
        return _RELEASE_LIST.validate_json(response.content)
    except ValidationError as exc:
        raise ProbeError(f"github releases: unexpected payload ({exc.error_count()} errors)") from exc


async def fetch_latest_release(
    client: httpx.AsyncClient, owner: str, repo: str, token: Optional[str] = None
) -> GitHubRelease:
    """Fetch the release GitHub marks as latest (never a pre-release)."""

    response = await client.get(
        f"{GITHUB_API}/repos/{owner}/{repo}/releases/latest",
        headers=_headers(token),
    )
    if response.status_code < 200 or response.status_code >= 300:
        raise ProbeError(f"github latest release: {response.status_code} {response.reason_phrase}")
    try:
        return GitHubRelease.model_validate_json(response.content)
    except ValidationError as exc:
        raise ProbeError("github latest release: unexpected payload") from exc


def select_highest(
    repo: str, releases: List[GitHubRelease], include_prerelease: bool = False
) -> ReleaseInfo:
    """Pick the release with the highest ``M.m.p`` found in its tag or name.

    Drafts are always skipped; pre-releases unless ``include_prerelease``.
    """

    best: Optional[Tuple[SemanticVersion, GitHubRelease]] = None
    for release in releases:
        if release.draft or (release.prerelease and not include_prerelease):
            continue
        version = SemanticVersion.search(release.tag_name.strip())
        if version is None:
            version = SemanticVersion.search((release.name or "").strip())
        if version is None:
            continue
        if best is None or version > best[0]:
            best = (version, release)

    if best is None:
        raise ProbeError("no stable releases with semver tags found")

    version, release = best
    return ReleaseInfo(
        repo=repo,
        highest_version=str(version),
        tag=release.tag_name,
        name=release.name or "",
        url=release.html_url,
        is_prerelease=release.prerelease,
    )


class ReleaseDetector:
    """Finds the highest stable release, consulting the on-disk cache first."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        token: Optional[str] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self.cache_dir = cache_dir
        self.token = token if token is not None else os.getenv("GITHUB_TOKEN")
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        )

    async def detect_highest_stable(
        self,
        owner: str,
        repo: str,
        max_pages: int = 3,
        cache_ttl: timedelta = timedelta(hours=1),
        include_prerelease: bool = False,
        on_page_fetched: Optional[Callable[[int], Awaitable[None]]] = None,
    ) -> Tuple[ReleaseInfo, bool]:
        """Return ``(release, from_cache)``.

        Raises ``ProbeError`` when nothing usable could be found and
        ``httpx.HTTPError`` on transport failures.
        """

        full_repo = f"{owner}/{repo}"
        cached = read_cache(full_repo, cache_ttl, self.cache_dir)
        if cached is not None:
            return cached.model_copy(update={"source": "cache"}), True

        releases: List[GitHubRelease] = []
        async with self._client_factory() as client:
            for page in range(1, max(max_pages, 1) + 1):
                items = await fetch_releases_page(client, owner, repo, page, self.token)
                if not items:
                    break
                releases.extend(items)
                if on_page_fetched is not None:
                    await on_page_fetched(page)
        if not releases:
            raise ProbeError("no releases returned")

        info = select_highest(full_repo, releases, include_prerelease)
        info = info.model_copy(update={"fetched_at": utcnow(), "source": "github_api"})
        try:
            write_cache(info, self.cache_dir)
        except OSError as exc:
            logger.debug(f"Unable to write release cache: {exc}")
        return info, False

    async def latest_release(self, owner: str, repo: str) -> ReleaseInfo:
        """Fallback lookup via the ``releases/latest`` endpoint."""

        async with self._client_factory() as client:
            release = await fetch_latest_release(client, owner, repo, self.token)
        tag = release.tag_name.strip()
        if not tag:
            raise ProbeError("latest release has no tag")
        highest = tag.lstrip("vV") or tag
        if not tag.lower().startswith("v"):
            tag = f"v{highest}"
        return ReleaseInfo(repo=f"{owner}/{repo}", highest_version=highest, tag=tag)
