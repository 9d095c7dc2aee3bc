"""Tests for search result parsing and scene URL rules."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.scraper.parser import SearchResultParser, parse_search_html  # noqa: E402
from backend.scraper.urls import (  # noqa: E402
    build_candidate_id,
    canonical_scene_url,
    looks_like_scene_url,
    title_from_scene_url,
)

ARTICLE_CARDS_HTML = """
<html><body>
  <article class="post">
    <h2 class="entry-title"><a href="/video-one/">Video One</a></h2>
    <img data-src="https://cdn.pmvhaven.com/thumbs/video-one.jpg" />
  </article>
  <article class="post">
    <h2 class="entry-title"><a href="https://pmvhaven.com/video-two/">Video Two</a></h2>
    <img src="/images/video-two.jpg" />
  </article>
</body></html>
"""

JSON_LD_HTML = """
<html><body>
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "VideoObject",
    "name": "JSONLD Video",
    "url": "https://pmvhaven.com/jsonld-video/",
    "thumbnailUrl": "https://pmvhaven.com/thumbs/jsonld.jpg"
  }
  </script>
</body></html>
"""

VIDEO_LINKS_HTML = """
<html><body>
  <a href="/video/gooning-is-healthy_673a8cccaa8d005d3a4d0ae8?from=search&amp;cp=0">
    <img src="https://video.pmvhaven.com/thumbnails/673a8cccaa8d005d3a4d0ae8/thumb_lg.webp" alt="Gooning Is Healthy" />
  </a>
  <a href="/video/another-title_6737b7bf8d304b135bf0c4bc?from=search&amp;cp=1">
    <img data-src="https://video.pmvhaven.com/thumbnails/6737b7bf8d304b135bf0c4bc/thumb_lg.webp" alt="Another Title" />
  </a>
</body></html>
"""


def test_parse_article_cards() -> None:
    candidates = parse_search_html(ARTICLE_CARDS_HTML, 5)

    assert [c.scene_url for c in candidates] == [
        "https://pmvhaven.com/video-one",
        "https://pmvhaven.com/video-two",
    ]
    assert [c.title for c in candidates] == ["Video One", "Video Two"]
    assert candidates[0].thumbnail_url == "https://cdn.pmvhaven.com/thumbs/video-one.jpg"
    assert candidates[1].thumbnail_url == "https://pmvhaven.com/images/video-two.jpg"
    assert [c.id for c in candidates] == ["video-one", "video-two"]


def test_parse_json_ld_fallback() -> None:
    candidates = parse_search_html(JSON_LD_HTML, 5)

    assert len(candidates) == 1
    assert candidates[0].title == "JSONLD Video"
    assert candidates[0].scene_url == "https://pmvhaven.com/jsonld-video"
    assert candidates[0].thumbnail_url == "https://pmvhaven.com/thumbs/jsonld.jpg"


def test_parse_direct_video_links() -> None:
    candidates = parse_search_html(VIDEO_LINKS_HTML, 5)

    assert len(candidates) == 2
    first, second = candidates
    assert first.id == "673a8cccaa8d005d3a4d0ae8"
    assert first.scene_url == (
        "https://pmvhaven.com/video/gooning-is-healthy_673a8cccaa8d005d3a4d0ae8"
    )
    assert first.title == "Gooning Is Healthy"
    assert first.thumbnail_url.endswith("/673a8cccaa8d005d3a4d0ae8/thumb_lg.webp")
    assert second.id == "6737b7bf8d304b135bf0c4bc"
    assert second.thumbnail_url.startswith("https://video.pmvhaven.com/thumbnails/")


def test_strategies_are_merged_without_duplicates() -> None:
    html = VIDEO_LINKS_HTML.replace(
        "</body>",
        """
        <article class="post">
          <h2><a href="https://pmvhaven.com/video/gooning-is-healthy_673a8cccaa8d005d3a4d0ae8/">
            Card Title
          </a></h2>
        </article>
        </body>""",
    )

    candidates = parse_search_html(html, 10)

    assert len(candidates) == 2
    # first occurrence wins
    assert candidates[0].title == "Gooning Is Healthy"


def test_parse_respects_limit() -> None:
    assert len(parse_search_html(VIDEO_LINKS_HTML, 1)) == 1
    assert len(SearchResultParser().parse(VIDEO_LINKS_HTML, 0)) == 2


def test_parse_skips_blocked_and_foreign_links() -> None:
    html = """
    <html><body>
      <article><h2><a href="/tag/remix/">Tag page</a></h2></article>
      <article><h2><a href="https://example.com/video/x">Elsewhere</a></h2></article>
      <article><h2><a href="/search?q=remix">Search page</a></h2></article>
      <article><h2><a href="/">Home</a></h2></article>
    </body></html>
    """

    assert parse_search_html(html, 5) == []


@pytest.mark.parametrize("html", ["", "   ", "<html><body><p>nothing</p></body></html>"])
def test_parse_returns_empty_list_for_pages_without_results(html: str) -> None:
    assert parse_search_html(html, 5) == []


def test_canonical_scene_url_is_idempotent() -> None:
    raw = "https://pmvhaven.com/video/a_b//?x=1#frag"

    canonical = canonical_scene_url(raw)

    assert canonical == "https://pmvhaven.com/video/a_b"
    assert canonical_scene_url(canonical) == canonical
    assert canonical_scene_url("//cdn.pmvhaven.com/v/") == "https://cdn.pmvhaven.com/v"
    assert canonical_scene_url("") == ""


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("/video/some-title_673a8cccaa8d005d3a4d0ae8", True),
        ("https://cdn.pmvhaven.com/video/x", True),
        ("https://pmvhaven.com/category/pmv/", False),
        ("https://pmvhaven.com/page/2/", False),
        ("https://pmvhaven.com/?s=remix", False),
        ("https://pmvhaven.com/", False),
        ("https://notpmvhaven.com/video/x", False),
        ("", False),
    ],
)
def test_looks_like_scene_url(url: str, expected: bool) -> None:
    assert looks_like_scene_url(url) is expected


def test_build_candidate_id_prefers_native_id() -> None:
    url = "https://pmvhaven.com/video/gooning-is-healthy_673a8cccaa8d005d3a4d0ae8"

    assert build_candidate_id(url) == "673a8cccaa8d005d3a4d0ae8"
    assert build_candidate_id(url + "?from=search") == "673a8cccaa8d005d3a4d0ae8"
    assert build_candidate_id("https://pmvhaven.com/Video_One/") == "video_one"


def test_build_candidate_id_hashes_unusable_slugs() -> None:
    first = build_candidate_id("https://pmvhaven.com/!!!")
    second = build_candidate_id("https://pmvhaven.com/!!!")

    assert first == second
    assert len(first) == 12
    assert all(ch in "0123456789abcdef" for ch in first)


def test_title_from_scene_url_drops_native_id() -> None:
    url = "https://pmvhaven.com/video/gooning-is-healthy_673a8cccaa8d005d3a4d0ae8"

    assert title_from_scene_url(url) == "gooning is healthy"
