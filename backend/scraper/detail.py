"""
Scene detail page helpers used to enrich search candidates.
"""
from __future__ import annotations

import html as html_lib
from typing import Any

from bs4 import BeautifulSoup

from .parser import attr_of, first_non_empty, json_image_url, load_json_ld, text_of
from .urls import DEFAULT_BASE_URL, absolute_url

DEFAULT_SITE_NAME = "PMVHaven"


def _json_ld_thumbnail(node: Any) -> str:
    if isinstance(node, dict):
        found = json_image_url(node)
        if found:
            return found
        for child in node.values():
            found = _json_ld_thumbnail(child)
            if found:
                return found
    elif isinstance(node, list):
        for child in node:
            found = _json_ld_thumbnail(child)
            if found:
                return found
    return ""


def parse_scene_thumbnail(html: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Best cover image advertised by a scene page, as an absolute URL."""

    if not html or not html.strip():
        return ""
    soup = BeautifulSoup(html, "html.parser")

    thumbnail = first_non_empty(
        attr_of(soup.select_one('meta[property="og:image"]'), "content"),
        attr_of(soup.select_one('meta[name="twitter:image"]'), "content"),
        attr_of(soup.select_one("video[poster]"), "poster"),
    )
    if not thumbnail:
        for document in load_json_ld(soup):
            thumbnail = _json_ld_thumbnail(document)
            if thumbnail:
                break
    return absolute_url(thumbnail, base_url)


def clean_title(raw: str, site_name: str = DEFAULT_SITE_NAME) -> str:
    """Strip the site name suffix appended to page titles."""

    title = html_lib.unescape(raw or "").strip()
    if not title:
        return ""
    for suffix in (f" | {site_name}", f" - {site_name}"):
        if title.endswith(suffix):
            title = title[: -len(suffix)].strip()
    return title


def parse_scene_title(html: str, site_name: str = DEFAULT_SITE_NAME) -> str:
    if not html or not html.strip():
        return ""
    soup = BeautifulSoup(html, "html.parser")

    title = first_non_empty(
        attr_of(soup.select_one('meta[property="og:title"]'), "content"),
        attr_of(soup.select_one('meta[name="twitter:title"]'), "content"),
    )
    if not title:
        title = text_of(soup.find("title"))
    return clean_title(title, site_name)
