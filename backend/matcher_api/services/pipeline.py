"""Wiring of the matching pipeline from settings."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import Engine

from ...scraper import SiteClient
from ..settings import MatcherSettings
from ..stores.file_store import FileStore
from ..stores.lock_store import LockStore
from ..stores.scene_store import SceneStore
from .batch import BATCH_LOCK_NAME, BatchMatcher, RunLock
from .matcher import FileMatcher
from .ranking import Reranker, build_reranker


def create_site_client(settings: MatcherSettings) -> SiteClient:
    """HTTP client for the configured catalog site."""

    debug_dir = Path(settings.debug_html_dir) if settings.debug_html_dump else None
    return SiteClient(
        base_url=settings.site_base_url,
        site_name=settings.site_name,
        timeout=settings.request_timeout,
        retries=settings.request_retries,
        retry_backoff=settings.request_retry_backoff,
        user_agent=settings.user_agent,
        debug_html_dir=debug_dir,
    )


@dataclass(slots=True)
class MatchPipeline:
    files: FileStore
    scenes: SceneStore
    run_lock: RunLock
    site: SiteClient
    matcher: FileMatcher
    batch: BatchMatcher

    def close(self) -> None:
        self.site.close()


def build_pipeline(
    settings: MatcherSettings,
    engine: Engine,
    *,
    site_client: SiteClient | None = None,
    reranker: Reranker | None = None,
) -> MatchPipeline:
    files = FileStore(engine)
    scenes = SceneStore(engine)
    run_lock = RunLock(
        LockStore(engine), BATCH_LOCK_NAME, ttl_seconds=settings.batch_lock_ttl_seconds
    )
    site = site_client or create_site_client(settings)
    matcher = FileMatcher(
        files=files,
        catalog=scenes,
        site=site,
        reranker=reranker or build_reranker(settings),
        candidate_limit=settings.candidate_limit,
        autolink_min_confidence=settings.autolink_min_confidence,
        site_label=settings.site_name,
    )
    return MatchPipeline(
        files=files,
        scenes=scenes,
        run_lock=run_lock,
        site=site,
        matcher=matcher,
        batch=BatchMatcher(files=files, matcher=matcher, run_lock=run_lock),
    )
