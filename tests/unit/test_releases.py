"""Release detection and the on-disk release cache."""

import json
from datetime import timedelta

import httpx
import pytest

from evoinstaller.errors import ProbeError
from evoinstaller.models import ReleaseInfo, utcnow
from evoinstaller.services.release_cache import (
    cache_path,
    default_cache_dir,
    read_cache,
    safe_repo_name,
    write_cache,
)
from evoinstaller.services.releases import GitHubRelease, ReleaseDetector, select_highest

REPO = "evolution-cms/evolution"

PAGE = [
    {"tag_name": "v3.5.2", "name": "3.5.2", "html_url": "https://example.test/3.5.2"},
    {"tag_name": "v3.6.0", "name": "3.6.0", "prerelease": True},
    {"tag_name": "v9.9.9", "draft": True},
    {"tag_name": "latest", "name": "Evolution 3.5.10"},
    {"tag_name": "nightly"},
]


def detector(tmp_path, handler, requests=None):
    def record(request):
        if requests is not None:
            requests.append(request)
        return handler(request)

    return ReleaseDetector(
        cache_dir=tmp_path,
        token="",
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(record)),
    )


def paged(request):
    if request.url.params["page"] == "1":
        return httpx.Response(200, json=PAGE)
    return httpx.Response(200, json=[])


def test_select_highest_skips_drafts_and_prereleases():
    releases = [GitHubRelease(**item) for item in PAGE]

    info = select_highest(REPO, releases)
    assert info.highest_version == "3.5.10"
    assert info.tag == "latest"

    with_pre = select_highest(REPO, releases, include_prerelease=True)
    assert with_pre.highest_version == "3.6.0"
    assert with_pre.is_prerelease


def test_select_highest_without_candidates():
    with pytest.raises(ProbeError, match="no stable releases"):
        select_highest(REPO, [GitHubRelease(tag_name="nightly")])


@pytest.mark.asyncio
async def test_detect_fetches_pages_until_empty_and_caches(tmp_path):
    requests = []
    pages = []

    async def on_page(page):
        pages.append(page)

    info, cached = await detector(tmp_path, paged, requests).detect_highest_stable(
        "evolution-cms", "evolution", on_page_fetched=on_page
    )

    assert not cached
    assert info.highest_version == "3.5.10"
    assert info.source == "github_api"
    assert info.fetched_at is not None
    assert [r.url.params["page"] for r in requests] == ["1", "2"]
    assert pages == [1]
    assert "Authorization" not in requests[0].headers
    assert cache_path(REPO, tmp_path).exists()

    again, cached = await detector(tmp_path, paged).detect_highest_stable(
        "evolution-cms", "evolution"
    )
    assert cached
    assert again.source == "cache"
    assert again.highest_version == "3.5.10"


@pytest.mark.asyncio
async def test_detect_sends_token(tmp_path):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=[])

    releases = ReleaseDetector(
        cache_dir=tmp_path,
        token="ghp_secret",
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(ProbeError, match="no releases returned"):
        await releases.detect_highest_stable("evolution-cms", "evolution")
    assert requests[0].headers["Authorization"] == "Bearer ghp_secret"


@pytest.mark.asyncio
async def test_http_error_status_is_a_probe_error(tmp_path):
    def handler(request):
        return httpx.Response(403, json={"message": "rate limited"})

    with pytest.raises(ProbeError, match="403"):
        await detector(tmp_path, handler).detect_highest_stable("evolution-cms", "evolution")


@pytest.mark.asyncio
async def test_latest_release_normalizes_tag(tmp_path):
    def handler(request):
        assert request.url.path.endswith("/releases/latest")
        return httpx.Response(200, json={"tag_name": "1.4.0"})

    info = await detector(tmp_path, handler).latest_release("evolution-cms", "installer")
    assert info.tag == "v1.4.0"
    assert info.highest_version == "1.4.0"
    assert info.repo == "evolution-cms/installer"


def test_cache_expires_after_ttl(tmp_path):
    info = ReleaseInfo(
        repo=REPO, highest_version="3.5.2", fetched_at=utcnow() - timedelta(hours=2)
    )
    write_cache(info, tmp_path)

    assert read_cache(REPO, timedelta(hours=1), tmp_path) is None
    assert read_cache(REPO, timedelta(hours=3), tmp_path).highest_version == "3.5.2"


def test_cache_ignores_other_repo_and_garbage(tmp_path):
    info = ReleaseInfo(repo=REPO, highest_version="3.5.2", fetched_at=utcnow())
    path = write_cache(info, tmp_path)

    data = json.loads(path.read_text())
    data["release"]["repo"] = "someone/else"
    path.write_text(json.dumps(data))
    assert read_cache(REPO, timedelta(hours=1), tmp_path) is None

    path.write_text("{not json")
    assert read_cache(REPO, timedelta(hours=1), tmp_path) is None


def test_cache_without_timestamp_is_ignored(tmp_path):
    write_cache(ReleaseInfo(repo=REPO, highest_version="3.5.2"), tmp_path)
    assert read_cache(REPO, timedelta(hours=1), tmp_path) is None


def test_cache_location(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    assert default_cache_dir() == tmp_path
    assert safe_repo_name("evolution-cms/evolution") == "evolution-cms_evolution"
    assert safe_repo_name("  ") == "unknown"
    assert cache_path(REPO) == tmp_path / "evo-installer" / "release-evolution-cms_evolution.json"
