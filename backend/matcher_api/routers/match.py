"""Catalog matching endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import (
    get_batch_matcher,
    get_job_log_store,
    get_job_queue,
    get_job_store,
    get_matcher,
)
from ..schemas import (
    BatchRequestModel,
    BatchResultModel,
    JobModel,
    MatchRequestModel,
    MatchResultModel,
)
from ..services.batch import BatchMatcher
from ..services.matcher import FileMatcher, MatchError
from ..services.queue import JobQueueError, JobQueueService
from ..services.tasks import MATCH_BATCH_JOB
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore

router = APIRouter(prefix="/match", tags=["match"])


@router.post("", response_model=MatchResultModel)
def match_file(
    request: MatchRequestModel,
    matcher: FileMatcher = Depends(get_matcher),
) -> MatchResultModel:
    """Match one file; "no candidates" and "below threshold" are successful outcomes."""

    try:
        return matcher.match_file(request.file_id, dry_run=request.dry_run)
    except MatchError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.post("/unmatched", response_model=BatchResultModel)
def match_unmatched(
    request: BatchRequestModel,
    batch: BatchMatcher = Depends(get_batch_matcher),
) -> BatchResultModel:
    """Run a batch synchronously and return every per-file outcome."""

    result = batch.run_exclusive(request)
    if result is None:
        raise HTTPException(status_code=409, detail="batch match is already running")
    return result


@router.get("/unmatched", response_model=JobModel, status_code=202)
def trigger_match_unmatched(
    dry_run: bool = Query(default=False),
    limit: int = Query(default=0, description="Files to scan; <=0 means 50, capped at 500."),
    concurrency: int = Query(default=0, description="Parallel workers; <=0 means 10, capped at 50."),
    volume_id: int | None = Query(default=None),
    path_prefix: str | None = Query(default=None),
    store: JobStore = Depends(get_job_store),
    log_store: JobLogStore = Depends(get_job_log_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> JobModel:
    """Queue a background batch run and return immediately."""

    request = BatchRequestModel(
        dry_run=dry_run,
        limit=limit,
        concurrency=concurrency,
        volume_id=volume_id,
        path_prefix=path_prefix,
    )
    try:
        return queue.enqueue(
            store, log_store, MATCH_BATCH_JOB, request.model_dump(exclude_none=True)
        )
    except JobQueueError as exc:  # pragma: no cover - queue failures
        raise HTTPException(status_code=503, detail=str(exc)) from exc
