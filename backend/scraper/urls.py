"""
URL rules for the scene catalog: canonical forms, scene detection and ids.
"""
from __future__ import annotations

import hashlib
import posixpath
import re
from urllib.parse import urljoin, urlsplit, urlunsplit

DEFAULT_BASE_URL = "https://pmvhaven.com"

BLOCKED_URL_FRAGMENTS = (
    "/tag/",
    "/category/",
    "/author/",
    "/page/",
    "/wp-content/",
    "/feed",
    "?s=",
    "/search?",
)

_NATIVE_ID_RE = re.compile(r"_([a-f0-9]{24})$")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\-_]+")
_TRAILING_HEX_RE = re.compile(r"\s+[a-f0-9]{24}$")


def absolute_url(raw: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Resolve relative and protocol-relative URLs against the site."""

    raw = (raw or "").strip()
    if not raw:
        return ""
    if raw.startswith("//"):
        return f"https:{raw}"
    if raw.startswith(("http://", "https://")):
        return raw
    return urljoin(base_url.rstrip("/") + "/", raw)


def canonical_scene_url(raw: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Return the absolute URL without fragment, query or trailing slash."""

    absolute = absolute_url(raw, base_url)
    if not absolute:
        return ""
    try:
        parts = urlsplit(absolute)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return urlunsplit((parts.scheme, parts.netloc, parts.path.rstrip("/"), "", ""))


def _site_host(base_url: str) -> str:
    return (urlsplit(base_url).hostname or "").lower()


def looks_like_scene_url(raw: str, base_url: str = DEFAULT_BASE_URL) -> bool:
    """Whether ``raw`` points at a content page of the target site."""

    canonical = canonical_scene_url(raw, base_url)
    if not canonical:
        return False

    parts = urlsplit(canonical.lower())
    host = parts.hostname or ""
    site_host = _site_host(base_url)
    if host != site_host and not host.endswith("." + site_host):
        return False
    if not parts.path.strip("/"):
        return False

    raw_lower = absolute_url(raw, base_url).lower()
    for fragment in BLOCKED_URL_FRAGMENTS:
        if fragment in raw_lower or fragment in canonical.lower():
            return False
    return True


def build_candidate_id(scene_url: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Derive a stable short identifier from a scene URL."""

    canonical = canonical_scene_url(scene_url, base_url)
    if not canonical:
        return ""

    base = posixpath.basename(urlsplit(canonical).path).strip().lower()
    match = _NATIVE_ID_RE.search(base)
    if match:
        return match.group(1)

    slug = _SLUG_STRIP_RE.sub("-", base).strip("-")
    if slug:
        return slug

    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:12]


def title_from_scene_url(scene_url: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Synthesize a readable title from the URL slug."""

    canonical = canonical_scene_url(scene_url, base_url)
    if not canonical:
        return ""
    base = posixpath.basename(urlsplit(canonical).path).strip()
    base = base.replace("_", " ").replace("-", " ")
    base = _TRAILING_HEX_RE.sub("", base)
    return " ".join(base.split())
