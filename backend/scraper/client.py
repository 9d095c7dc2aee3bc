"""
HTTP client for the scene catalog search and detail pages.
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote_plus

import httpx

from .detail import DEFAULT_SITE_NAME, parse_scene_thumbnail, parse_scene_title
from .http import (
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    ScrapeError,
    dump_search_html,
    fetch_page,
)
from .models import Candidate
from .parser import DEFAULT_CANDIDATE_LIMIT, SearchResultParser
from .urls import DEFAULT_BASE_URL, canonical_scene_url

logger = logging.getLogger(__name__)


class SiteClient:
    """Search the catalog and enrich candidates from their detail pages."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        site_name: str = DEFAULT_SITE_NAME,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        retry_backoff: float = 0.0,
        user_agent: str = DEFAULT_USER_AGENT,
        debug_html_dir: Optional[Path] = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.site_name = site_name
        self.retries = retries
        self.retry_backoff = retry_backoff
        self.debug_html_dir = debug_html_dir
        self.parser = SearchResultParser(self.base_url)
        self._client = httpx.Client(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SiteClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def search_urls(self, query: str) -> List[str]:
        """Query URL variants tried in order for one search."""

        return [f"{self.base_url}/search?q={quote_plus(query.strip())}"]

    def _fetch(self, url: str) -> str:
        return fetch_page(self._client, url, retries=self.retries, backoff=self.retry_backoff)

    def search(self, query: str, limit: int = DEFAULT_CANDIDATE_LIMIT) -> List[Candidate]:
        """Return up to ``limit`` candidates merged across URL variants.

        An empty list is a valid "no matches" answer. :class:`ScrapeError` is
        raised only when nothing was found and a variant failed.
        """

        if limit <= 0:
            limit = DEFAULT_CANDIDATE_LIMIT

        last_error: ScrapeError | None = None
        seen: set[str] = set()
        merged: List[Candidate] = []
        for call, url in enumerate(self.search_urls(query), start=1):
            logger.info("call #%d query=%r url=%s", call, query, url)
            try:
                body = self._fetch(url)
            except ScrapeError as exc:
                logger.warning("call #%d failed url=%s err=%s", call, url, exc)
                last_error = exc
                continue

            logger.info("call #%d response bytes=%d url=%s", call, len(body), url)
            self._dump(query, call, body)

            candidates = self.parser.parse(body, limit)
            logger.info("call #%d parsed_candidates=%d url=%s", call, len(candidates), url)
            for candidate in candidates:
                if len(merged) >= limit:
                    break
                if candidate.scene_url in seen:
                    continue
                seen.add(candidate.scene_url)
                merged.append(candidate)
            if len(merged) >= limit:
                break

        if merged:
            logger.info("final candidates=%d query=%r", len(merged), query)
            return merged
        if last_error is not None:
            raise last_error
        logger.info("no candidates query=%r", query)
        return []

    def enrich(self, candidate: Candidate) -> Candidate:
        """Refresh thumbnail and title from the candidate's own page.

        Raises :class:`ScrapeError` on failure; the input candidate is never
        modified.
        """

        scene_url = canonical_scene_url(candidate.scene_url, self.base_url)
        if not scene_url:
            raise ScrapeError("invalid scene url", url=candidate.scene_url)

        body = self._fetch(scene_url)
        updates: dict[str, str] = {}
        thumbnail = parse_scene_thumbnail(body, self.base_url)
        if thumbnail:
            updates["thumbnail_url"] = thumbnail
        title = parse_scene_title(body, self.site_name)
        if title:
            updates["title"] = title
        return dataclasses.replace(candidate, **updates)

    def _dump(self, query: str, call: int, body: str) -> None:
        if self.debug_html_dir is None:
            return
        try:
            path = dump_search_html(self.debug_html_dir, query, call, body)
        except (OSError, ValueError) as exc:
            logger.warning("call #%d html dump failed err=%s", call, exc)
            return
        logger.info("call #%d html dump file=%s", call, path)
