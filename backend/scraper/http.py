"""HTTP fetch helpers shared by search and enrichment calls."""
from __future__ import annotations

import logging
import re
import time
from datetime import datetime
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) "
    "Gecko/20100101 Firefox/121.0"
)
DEFAULT_TIMEOUT = 25.0
DEFAULT_RETRIES = 2

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class ScrapeError(RuntimeError):
    """Raised when a catalog page cannot be fetched."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def fetch_page(
    client: httpx.Client,
    url: str,
    *,
    retries: int = DEFAULT_RETRIES,
    backoff: float = 0.0,
) -> str:
    """GET ``url`` and return the body, retrying failed attempts.

    Any ``httpx`` failure (transport, redirect loop, undecodable body) and any
    non-2xx response is retried ``retries`` times; the last failure is raised
    as :class:`ScrapeError`.
    """

    attempts = max(retries, 0) + 1
    attempt = 1
    while True:
        try:
            response = client.get(url)
        except httpx.HTTPError as exc:
            error = ScrapeError(f"request to {url} failed: {exc}", url=url)
            error.__cause__ = exc
        else:
            if 200 <= response.status_code < 300:
                return response.text
            error = ScrapeError(
                f"{url} responded with status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        if attempt >= attempts:
            raise error
        logger.debug("attempt %d/%d failed url=%s err=%s", attempt, attempts, url, error)
        if backoff > 0:
            time.sleep(backoff * attempt)
        attempt += 1


def slug_for_filename(value: str) -> str:
    slug = _SLUG_RE.sub("_", value.strip().lower()).strip("_")
    return slug[:80] if slug else "query"


def dump_search_html(directory: Path, query: str, call_number: int, body: str) -> Path:
    """Write a fetched search page to disk for selector debugging."""

    if not body.strip():
        raise ValueError("empty body")
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = directory / f"{stamp}_{call_number:02d}_search_{slug_for_filename(query)}.html"
    path.write_text(body, encoding="utf-8")
    return path
