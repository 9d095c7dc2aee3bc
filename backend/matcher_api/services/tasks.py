"""RQ task entrypoints executed by background workers."""
from __future__ import annotations

import logging
from typing import Any

from rq import get_current_job

from ..db import create_engine_from_settings, init_database
from ..schemas import BatchRequestModel
from ..settings import MatcherSettings
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from . import pipeline

logger = logging.getLogger(__name__)

MATCH_BATCH_JOB = "match_batch"


def execute_matcher_job(
    *,
    job_id: str,
    job_type: str,
    payload: dict[str, Any] | None,
    settings: dict[str, Any],
    worker_name: str,
) -> None:
    """Background worker entrypoint for matcher jobs."""

    resolved_settings = MatcherSettings.model_validate(settings)
    engine = create_engine_from_settings(resolved_settings)
    init_database(engine)
    job_store = JobStore(engine)
    log_store = JobLogStore(engine)

    current_job = get_current_job()
    worker_id = worker_name
    if current_job and getattr(current_job, "worker_name", None):  # pragma: no cover - runtime path
        worker_id = current_job.worker_name

    job_store.mark_running(job_id, worker_id=worker_id)
    log_store.append(job_id, "Job started")

    try:
        if job_type == MATCH_BATCH_JOB:
            result = _execute_match_batch(job_id, log_store, resolved_settings, engine, payload)
        else:
            log_store.append(job_id, f"Unknown job type: {job_type}", level="warning")
            result = None

        job_store.mark_completed(job_id, result=result)
        log_store.append(job_id, "Job completed")
    except Exception as exc:
        logger.exception("job %s failed", job_id)
        job_store.mark_failed(job_id, error_message=str(exc))
        log_store.append(job_id, "Job failed", level="error", context={"error": str(exc)})
        raise
    finally:
        engine.dispose()


def _execute_match_batch(
    job_id: str,
    log_store: JobLogStore,
    settings: MatcherSettings,
    engine,
    payload: dict[str, Any] | None,
) -> dict[str, Any]:
    """Run one exclusive batch; a held lock turns the job into a no-op."""

    request = BatchRequestModel.model_validate(payload or {})
    log_store.append(
        job_id,
        "Starting batch match",
        context=request.model_dump(exclude_none=True),
    )

    match_pipeline = pipeline.build_pipeline(settings, engine)
    try:
        result = match_pipeline.batch.run_exclusive(request)
    finally:
        match_pipeline.close()

    if result is None:
        log_store.append(job_id, "Batch skipped: already running", level="warning")
        return {"skipped": True, "reason": "already running"}

    summary = {
        "scanned": result.scanned,
        "matched": result.matched,
        "skipped_already_matched": result.skipped_already_matched,
        "errors": result.errors,
    }
    for item in result.results:
        if item.error:
            log_store.append(
                job_id,
                f"file_id {item.file_id} failed",
                level="warning",
                context={"status_code": item.status_code, "error": item.error},
            )
    log_store.append(job_id, "Batch match finished", context=summary)
    return summary
