"""
Search results parser.

Search pages change markup often, so candidates are pulled out by several
independent strategies that are tried in order. Results are merged and
deduplicated by canonical scene URL, keeping the first occurrence.
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Iterator, List, Optional, Protocol, Sequence

from bs4 import BeautifulSoup, Tag

from .models import Candidate
from .urls import (
    DEFAULT_BASE_URL,
    absolute_url,
    build_candidate_id,
    canonical_scene_url,
    looks_like_scene_url,
    title_from_scene_url,
)

DEFAULT_CANDIDATE_LIMIT = 5

LAZY_IMAGE_ATTRS = ("data-src", "data-lazy-src", "data-original", "src")
LINK_ATTRS = ("href",) + LAZY_IMAGE_ATTRS
SRCSET_ATTRS = ("data-srcset", "srcset")
JSON_LD_SELECTOR = 'script[type="application/ld+json"]'


def text_of(node: Optional[Tag]) -> str:
    """Visible text of a node with whitespace collapsed."""

    if node is None:
        return ""
    return " ".join(node.get_text(" ").split())


def attr_of(node: Optional[Tag], name: str) -> str:
    if node is None:
        return ""
    value = node.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def first_non_empty(*values: str) -> str:
    for value in values:
        value = (value or "").strip()
        if value:
            return value
    return ""


def first_srcset_entry(value: str) -> str:
    """Truncate a ``srcset`` style value to its first URL."""

    value = value.strip()
    if "," in value:
        value = value.split(",")[0].strip()
    parts = value.split()
    return parts[0] if parts else ""


def load_json_ld(soup: BeautifulSoup) -> Iterator[Any]:
    """Yield every embedded JSON-LD document that parses cleanly."""

    for script in soup.select(JSON_LD_SELECTOR):
        text = (script.string or script.get_text() or "").strip()
        if not text:
            continue
        try:
            yield json.loads(text)
        except ValueError:
            continue


def walk_json(node: Any) -> Iterator[dict[str, Any]]:
    """Depth-first walk over every object nested in a JSON document."""

    if isinstance(node, dict):
        yield node
        for child in node.values():
            yield from walk_json(child)
    elif isinstance(node, list):
        for child in node:
            yield from walk_json(child)


def json_image_url(node: dict[str, Any]) -> str:
    """Thumbnail reference of a schema.org object, if any."""

    for key in ("thumbnailUrl", "image"):
        value = node.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        if isinstance(value, dict):
            value = value.get("url")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class ExtractionStrategy(Protocol):
    """Pulls raw candidates out of a parsed search page."""

    name: str

    def extract(self, soup: BeautifulSoup) -> Iterable[Candidate]:
        ...


class DirectLinkStrategy:
    """Anchors pointing straight at ``/video/`` detail pages."""

    name = "direct-link"

    def __init__(self, base_url: str = DEFAULT_BASE_URL) -> None:
        self.base_url = base_url

    def extract(self, soup: BeautifulSoup) -> Iterator[Candidate]:
        for anchor in soup.select('a[href*="/video/"]'):
            scene_url = attr_of(anchor, "href")
            if not looks_like_scene_url(scene_url, self.base_url):
                continue

            img = anchor.find("img")
            if img is None and isinstance(anchor.parent, Tag):
                # some layouts put the image in a sibling wrapper
                img = anchor.parent.find("img")

            title = first_non_empty(
                attr_of(anchor, "title"),
                attr_of(anchor, "aria-label"),
                text_of(anchor),
            )
            if not title and img is not None:
                title = first_non_empty(attr_of(img, "alt"), attr_of(img, "title"))
            if not title:
                title = title_from_scene_url(scene_url, self.base_url)

            thumbnail = ""
            if img is not None:
                thumbnail = first_non_empty(*(attr_of(img, attr) for attr in LAZY_IMAGE_ATTRS))

            yield Candidate(id="", title=title, scene_url=scene_url, thumbnail_url=thumbnail)


class CardStrategy:
    """Generic article/result cards as rendered by blog-style templates."""

    name = "card"

    CONTAINER_SELECTORS = (
        "article",
        ".post",
        ".entry",
        ".result-item",
        ".search-result",
        ".type-post",
    )
    LINK_SELECTORS = (
        "a.entry-title[href]",
        "h1 a[href]",
        "h2 a[href]",
        "h3 a[href]",
        'a[rel="bookmark"][href]',
        "a[href]",
    )
    TITLE_SELECTORS = (
        ".entry-title",
        "h1",
        "h2",
        "h3",
        'a[rel="bookmark"]',
        "a",
    )
    THUMBNAIL_SELECTORS = (
        "img[data-src]",
        "img[data-lazy-src]",
        "img[data-original]",
        "img[src]",
        "source[data-srcset]",
        "source[srcset]",
    )

    def __init__(self, base_url: str = DEFAULT_BASE_URL) -> None:
        self.base_url = base_url

    @staticmethod
    def _first_attr(card: Tag, selectors: Sequence[str]) -> str:
        for selector in selectors:
            node = card.select_one(selector)
            if node is None:
                continue
            if "srcset" in selector:
                value = first_non_empty(*(attr_of(node, attr) for attr in SRCSET_ATTRS))
                if value:
                    return value
            value = first_non_empty(*(attr_of(node, attr) for attr in LINK_ATTRS))
            if value:
                return value
        return ""

    @staticmethod
    def _first_text(card: Tag, selectors: Sequence[str]) -> str:
        for selector in selectors:
            value = text_of(card.select_one(selector))
            if value:
                return value
        return ""

    def extract(self, soup: BeautifulSoup) -> Iterator[Candidate]:
        for container in self.CONTAINER_SELECTORS:
            for card in soup.select(container):
                scene_url = self._first_attr(card, self.LINK_SELECTORS)
                if not looks_like_scene_url(scene_url, self.base_url):
                    continue
                thumbnail = self._first_attr(card, self.THUMBNAIL_SELECTORS)
                yield Candidate(
                    id="",
                    title=self._first_text(card, self.TITLE_SELECTORS),
                    scene_url=scene_url,
                    thumbnail_url=first_srcset_entry(thumbnail),
                )


class JsonLdStrategy:
    """schema.org objects exposing a ``name``/``url`` pair."""

    name = "json-ld"

    def __init__(self, base_url: str = DEFAULT_BASE_URL) -> None:
        self.base_url = base_url

    def extract(self, soup: BeautifulSoup) -> Iterator[Candidate]:
        for document in load_json_ld(soup):
            for node in walk_json(document):
                title = node.get("name")
                scene_url = node.get("url")
                title = title.strip() if isinstance(title, str) else ""
                scene_url = scene_url.strip() if isinstance(scene_url, str) else ""
                if not scene_url or not looks_like_scene_url(scene_url, self.base_url):
                    continue
                yield Candidate(
                    id="",
                    title=title,
                    scene_url=scene_url,
                    thumbnail_url=json_image_url(node),
                )


class SearchResultParser:
    """Run the extraction strategies in order and merge their output."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
    ) -> None:
        self.base_url = base_url
        self.strategies: List[ExtractionStrategy] = list(
            strategies
            or (
                DirectLinkStrategy(base_url),
                CardStrategy(base_url),
                JsonLdStrategy(base_url),
            )
        )

    def _normalize(self, raw: Candidate) -> Optional[Candidate]:
        scene_url = canonical_scene_url(raw.scene_url, self.base_url)
        title = (raw.title or "").strip()
        if not scene_url or not title:
            return None
        return Candidate(
            id=raw.id or build_candidate_id(scene_url, self.base_url),
            title=title,
            scene_url=scene_url,
            thumbnail_url=absolute_url(raw.thumbnail_url, self.base_url),
        )

    def parse(self, html: str, limit: int = DEFAULT_CANDIDATE_LIMIT) -> List[Candidate]:
        if limit <= 0:
            limit = DEFAULT_CANDIDATE_LIMIT
        if not html or not html.strip():
            return []

        soup = BeautifulSoup(html, "html.parser")
        seen: set[str] = set()
        out: List[Candidate] = []
        for strategy in self.strategies:
            for raw in strategy.extract(soup):
                candidate = self._normalize(raw)
                if candidate is None or candidate.scene_url in seen:
                    continue
                seen.add(candidate.scene_url)
                out.append(candidate)
                if len(out) >= limit:
                    return out
        return out


def parse_search_html(
    html: str,
    limit: int = DEFAULT_CANDIDATE_LIMIT,
    base_url: str = DEFAULT_BASE_URL,
) -> List[Candidate]:
    """Parse a search results document into candidates."""

    return SearchResultParser(base_url).parse(html, limit)
