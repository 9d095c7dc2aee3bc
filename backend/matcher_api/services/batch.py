"""Bounded-concurrency batch matching over unlinked files."""
from __future__ import annotations

import logging
import os
import queue
import socket
import threading
from contextlib import contextmanager
from typing import Iterator, List, Tuple
from uuid import uuid4

from ..schemas import BatchItemModel, BatchRequestModel, BatchResultModel, FileModel
from ..stores.lock_store import LockStore
from .matcher import FileMatcher, MatchConflictError, MatchError
from .ports import FileRegistry

logger = logging.getLogger(__name__)

BATCH_LOCK_NAME = "pmv-match"

DEFAULT_BATCH_LIMIT = 50
MAX_BATCH_LIMIT = 500
DEFAULT_BATCH_CONCURRENCY = 10
MAX_BATCH_CONCURRENCY = 50


def normalize_batch_limit(limit: int) -> int:
    if limit <= 0:
        return DEFAULT_BATCH_LIMIT
    return min(limit, MAX_BATCH_LIMIT)


def normalize_batch_concurrency(concurrency: int) -> int:
    if concurrency <= 0:
        return DEFAULT_BATCH_CONCURRENCY
    return min(concurrency, MAX_BATCH_CONCURRENCY)


class RunLockBusyError(RuntimeError):
    """Raised when a named run lock is already held."""


class RunLock:
    """Named lock guarding batch runs, shared by every process on the database."""

    def __init__(
        self,
        store: LockStore,
        name: str = BATCH_LOCK_NAME,
        *,
        owner: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.name = name
        self.owner = owner or f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"
        self.ttl_seconds = ttl_seconds

    def acquire(self) -> bool:
        return self.store.acquire(self.name, owner=self.owner, ttl_seconds=self.ttl_seconds)

    def release(self) -> None:
        self.store.release(self.name, owner=self.owner)

    def is_held(self) -> bool:
        return self.store.is_locked(self.name)

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the lock for one run under a token unique to this call."""

        token = f"{self.owner}:{uuid4().hex[:8]}"
        if not self.store.acquire(self.name, owner=token, ttl_seconds=self.ttl_seconds):
            raise RunLockBusyError(f"{self.name} is already running")
        try:
            yield
        finally:
            self.store.release(self.name, owner=token)


_Job = Tuple[int, FileModel]


class BatchMatcher:
    """Run :class:`FileMatcher` over eligible files with a worker pool."""

    def __init__(
        self,
        *,
        files: FileRegistry,
        matcher: FileMatcher,
        run_lock: RunLock | None = None,
    ) -> None:
        self.files = files
        self.matcher = matcher
        self.run_lock = run_lock

    def select_files(self, request: BatchRequestModel) -> List[FileModel]:
        return self.files.find_eligible(
            limit=normalize_batch_limit(request.limit),
            volume_id=request.volume_id,
            path_prefix=request.path_prefix,
        )

    def run(self, request: BatchRequestModel) -> BatchResultModel:
        """Match every selected file; results keep the selection order."""

        files = self.select_files(request)
        if not files:
            return BatchResultModel()

        workers = min(normalize_batch_concurrency(request.concurrency), len(files))
        jobs: "queue.Queue[_Job | None]" = queue.Queue(maxsize=workers)
        results: "queue.Queue[Tuple[int, BatchItemModel]]" = queue.Queue()

        def work() -> None:
            while True:
                job = jobs.get()
                if job is None:
                    return
                index, file = job
                results.put((index, self._match_one(file, request.dry_run)))

        threads = [
            threading.Thread(target=work, name=f"batch-worker-{number}", daemon=True)
            for number in range(workers)
        ]
        for thread in threads:
            thread.start()

        for job in enumerate(files):
            jobs.put(job)
        for _ in threads:
            jobs.put(None)

        slots: List[BatchItemModel | None] = [None] * len(files)
        for _ in files:
            index, item = results.get()
            slots[index] = item
        for thread in threads:
            thread.join()

        items = [item for item in slots if item is not None]
        return _summarize(items)

    def run_exclusive(self, request: BatchRequestModel) -> BatchResultModel | None:
        """Run under the named lock; ``None`` when another run holds it."""

        if self.run_lock is None:
            return self.run(request)
        try:
            with self.run_lock.hold():
                logger.info(
                    "batch start dry_run=%s limit=%d concurrency=%d volume_id=%s path_prefix=%r",
                    request.dry_run,
                    normalize_batch_limit(request.limit),
                    normalize_batch_concurrency(request.concurrency),
                    request.volume_id,
                    request.path_prefix,
                )
                result = self.run(request)
        except RunLockBusyError:
            logger.info("batch skipped: already running")
            return None
        logger.info(
            "batch done scanned=%d matched=%d skipped_already_matched=%d errors=%d",
            result.scanned,
            result.matched,
            result.skipped_already_matched,
            result.errors,
        )
        return result

    def _match_one(self, file: FileModel, dry_run: bool) -> BatchItemModel:
        try:
            result = self.matcher.match_file(file.id, dry_run=dry_run)
        except MatchError as exc:
            return BatchItemModel(
                file_id=file.id,
                filename=file.filename,
                status_code=exc.status_code,
                error=str(exc),
            )
        except Exception as exc:  # per-file failures never abort the batch
            logger.exception("file_id=%d unexpected match failure", file.id)
            return BatchItemModel(
                file_id=file.id, filename=file.filename, status_code=500, error=str(exc)
            )
        return BatchItemModel(file_id=file.id, filename=file.filename, status_code=200, result=result)


def _summarize(items: List[BatchItemModel]) -> BatchResultModel:
    matched = skipped = errors = 0
    for item in items:
        if item.error:
            if item.status_code == MatchConflictError.status_code:
                skipped += 1
            else:
                errors += 1
        elif item.result is None:
            errors += 1
        elif item.result.autolinked:
            matched += 1
    return BatchResultModel(
        scanned=len(items),
        matched=matched,
        skipped_already_matched=skipped,
        errors=errors,
        results=items,
    )
