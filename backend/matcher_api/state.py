"""Shared state container for the matcher API."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from ..scraper import SiteClient
from .db import create_engine_from_settings, init_database
from .services.batch import BatchMatcher, RunLock
from .services.matcher import FileMatcher
from .services.pipeline import MatchPipeline, build_pipeline
from .services.queue import JobQueueService
from .services.ranking import Reranker
from .settings import MatcherSettings
from .stores.file_store import FileStore
from .stores.job_log_store import JobLogStore
from .stores.job_store import JobStore
from .stores.scene_store import SceneStore


@dataclass(slots=True)
class AppState:
    """Encapsulates application state shared across routers."""

    settings: MatcherSettings
    engine: Engine
    job_store: JobStore
    job_log_store: JobLogStore
    job_queue: JobQueueService
    pipeline: MatchPipeline

    def __init__(
        self,
        settings: MatcherSettings,
        *,
        site_client: SiteClient | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        init_database(self.engine)
        self.job_store = JobStore(self.engine)
        self.job_log_store = JobLogStore(self.engine)
        self.job_queue = JobQueueService(settings)
        self.pipeline = build_pipeline(
            settings, self.engine, site_client=site_client, reranker=reranker
        )

    @property
    def file_store(self) -> FileStore:
        return self.pipeline.files

    @property
    def scene_store(self) -> SceneStore:
        return self.pipeline.scenes

    @property
    def matcher(self) -> FileMatcher:
        return self.pipeline.matcher

    @property
    def batch(self) -> BatchMatcher:
        return self.pipeline.batch

    @property
    def run_lock(self) -> RunLock:
        return self.pipeline.run_lock

    def close(self) -> None:
        self.pipeline.close()
        self.engine.dispose()
