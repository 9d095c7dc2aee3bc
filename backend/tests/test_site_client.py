"""Tests for the catalog HTTP client."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.scraper import Candidate, ScrapeError, SiteClient  # noqa: E402

SEARCH_HTML = """
<html><body>
  <a href="/video/super-smash-hoes_673a8cccaa8d005d3a4d0ae8?from=search">
    <img src="/thumbs/a.webp" alt="Super Smash Hoes" />
  </a>
  <a href="/video/smash-hoes-2_6737b7bf8d304b135bf0c4bc?from=search">
    <img src="/thumbs/b.webp" alt="Smash Hoes 2" />
  </a>
</body></html>
"""

DETAIL_HTML = """
<html><head>
  <meta property="og:title" content="Super Smash Hoes (Full) | PMVHaven" />
  <meta property="og:image" content="https://video.pmvhaven.com/covers/a.jpg" />
</head><body></body></html>
"""


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> SiteClient:
    return SiteClient(transport=httpx.MockTransport(handler), **kwargs)


def test_search_builds_query_url_and_parses_candidates() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text=SEARCH_HTML)

    with _client(handler) as client:
        candidates = client.search("super smash hoes", limit=5)

    assert len(requests) == 1
    assert str(requests[0].url) == "https://pmvhaven.com/search?q=super+smash+hoes"
    assert requests[0].headers["User-Agent"].startswith("Mozilla/5.0")
    assert [c.id for c in candidates] == ["673a8cccaa8d005d3a4d0ae8", "6737b7bf8d304b135bf0c4bc"]
    assert candidates[0].thumbnail_url == "https://pmvhaven.com/thumbs/a.webp"


def test_search_limit_truncates_results() -> None:
    with _client(lambda request: httpx.Response(200, text=SEARCH_HTML)) as client:
        candidates = client.search("smash", limit=1)

    assert [c.title for c in candidates] == ["Super Smash Hoes"]


def test_search_with_no_results_is_empty_not_error() -> None:
    with _client(lambda request: httpx.Response(200, text="<html><body></body></html>")) as client:
        assert client.search("nothing here") == []


def test_search_retries_then_raises_on_persistent_failure() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(500, text="boom")

    with _client(handler, retries=2) as client:
        with pytest.raises(ScrapeError) as excinfo:
            client.search("super smash hoes")

    assert len(calls) == 3
    assert excinfo.value.status_code == 500
    assert "500" in str(excinfo.value)


def test_search_recovers_after_transient_failure() -> None:
    responses = iter([httpx.Response(503), httpx.Response(200, text=SEARCH_HTML)])

    with _client(lambda request: next(responses), retries=1) as client:
        candidates = client.search("super smash hoes")

    assert len(candidates) == 2


def test_search_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler, retries=0) as client:
        with pytest.raises(ScrapeError, match="connection refused") as excinfo:
            client.search("anything")

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def redirect_loop(request: httpx.Request) -> httpx.Response:
    return httpx.Response(302, headers={"Location": str(request.url)})


def broken_gzip(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")


def test_search_wraps_undecodable_body() -> None:
    with _client(broken_gzip, retries=0) as client:
        with pytest.raises(ScrapeError) as excinfo:
            client.search("super smash hoes")

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.DecodingError)


def test_search_retries_undecodable_body_then_recovers() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if len(calls) == 1:
            return broken_gzip(request)
        return httpx.Response(200, text=SEARCH_HTML)

    with _client(handler, retries=1) as client:
        candidates = client.search("super smash hoes")

    assert len(calls) == 2
    assert len(candidates) == 2


def test_enrich_wraps_redirect_loop() -> None:
    original = Candidate(id="x", title="Kept", scene_url="https://pmvhaven.com/video/x")

    with _client(redirect_loop, retries=0) as client:
        with pytest.raises(ScrapeError) as excinfo:
            client.enrich(original)

    assert excinfo.value.url == "https://pmvhaven.com/video/x"
    assert isinstance(excinfo.value.__cause__, httpx.TooManyRedirects)


def test_enrich_refreshes_title_and_thumbnail() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text=DETAIL_HTML)

    original = Candidate(
        id="673a8cccaa8d005d3a4d0ae8",
        title="Super Smash Hoes",
        scene_url="https://pmvhaven.com/video/super-smash-hoes_673a8cccaa8d005d3a4d0ae8",
        thumbnail_url="https://pmvhaven.com/thumbs/a.webp",
    )
    with _client(handler) as client:
        enriched = client.enrich(original)

    assert seen == [original.scene_url]
    assert enriched.title == "Super Smash Hoes (Full)"
    assert enriched.thumbnail_url == "https://video.pmvhaven.com/covers/a.jpg"
    assert enriched.id == original.id
    assert original.title == "Super Smash Hoes"


def test_enrich_keeps_fields_missing_from_detail_page() -> None:
    original = Candidate(id="x", title="Kept", scene_url="https://pmvhaven.com/video/x", thumbnail_url="")

    with _client(lambda request: httpx.Response(200, text="<html></html>")) as client:
        enriched = client.enrich(original)

    assert enriched == original


def test_enrich_raises_on_fetch_failure() -> None:
    original = Candidate(id="x", title="Kept", scene_url="https://pmvhaven.com/video/x")

    with _client(lambda request: httpx.Response(404), retries=0) as client:
        with pytest.raises(ScrapeError):
            client.enrich(original)


def test_debug_dump_writes_search_html(tmp_path: Path) -> None:
    with _client(lambda request: httpx.Response(200, text=SEARCH_HTML), debug_html_dir=tmp_path) as client:
        client.search("Super Smash Hoes!")

    dumps = list(tmp_path.glob("*_01_search_super_smash_hoes.html"))
    assert len(dumps) == 1
    assert dumps[0].read_text(encoding="utf-8") == SEARCH_HTML
