"""Pydantic models exposed by the matcher API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class QueueHealthStatus(BaseModel):
    """Represents Redis queue connectivity status."""

    status: Literal["ok", "error"] = Field(default="ok")
    detail: str | None = Field(
        default=None, description="Optional diagnostic message when the queue is unavailable."
    )


class HealthStatus(BaseModel):
    """Service health payload."""

    status: Literal["ok"] = Field(default="ok")
    version: str = Field(default="0.1.0", description="Semantic version of the API service.")
    batch_running: bool = Field(
        default=False, description="Whether a batch match run currently holds the run lock."
    )
    queue: QueueHealthStatus = Field(
        default_factory=QueueHealthStatus,
        description="Health information for the background job queue.",
    )


class FileModel(BaseModel):
    """Video file known to the library."""

    id: int
    filename: str
    path: str = ""
    volume_id: int = 0
    type: str = "video"
    scene_id: int | None = None
    created_time: datetime | None = None


class SceneModel(BaseModel):
    """Catalog entry as exposed to clients."""

    id: int
    scene_id: str
    title: str
    studio: str
    site: str
    homepage_url: str
    cover_url: str
    covers: list[str] = Field(default_factory=list)
    filenames: list[str] = Field(default_factory=list)
    released: str = ""
    is_available: bool = False
    file_count: int = 0
    created_at: datetime
    updated_at: datetime


class SceneListModel(BaseModel):
    """Paginated list container for scene responses."""

    items: list[SceneModel]
    total: int
    page: int
    page_size: int


class MatchRequestModel(BaseModel):
    """Payload for matching a single file."""

    file_id: int | None = Field(default=None, description="Identifier of the file to match.")
    dry_run: bool = Field(default=False, description="Report the best match without persisting it.")


class MatchCandidateModel(BaseModel):
    """Scored catalog candidate for one file."""

    model_config = ConfigDict(frozen=True)

    rank: int = Field(default=0, description="1-based position after ranking.")
    pmv_id: str = Field(description="Identifier derived from the scene URL.")
    title: str
    scene_url: str
    thumbnail_url: str = ""
    confidence: float = Field(ge=0, le=1)
    reason: str = ""


class MatchResultModel(BaseModel):
    """Outcome of matching one file."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    file_id: int
    filename: str
    query: str
    autolinked: bool = False
    matched_scene_id: str | None = None
    candidates: tuple[MatchCandidateModel, ...] = ()
    message: str | None = None


class BatchRequestModel(BaseModel):
    """Batch run parameters; out-of-range limits are clamped, not rejected."""

    dry_run: bool = False
    limit: int = Field(default=0, description="Files to scan; <=0 means 50, capped at 500.")
    concurrency: int = Field(default=0, description="Parallel workers; <=0 means 10, capped at 50.")
    volume_id: int | None = Field(default=None, description="Restrict to files on one volume.")
    path_prefix: str | None = Field(default=None, description="Restrict to paths with this prefix.")


class BatchItemModel(BaseModel):
    """Per-file outcome inside a batch result."""

    file_id: int
    filename: str
    status_code: int
    error: str | None = None
    result: MatchResultModel | None = None


class BatchResultModel(BaseModel):
    """Aggregated outcome of a batch run."""

    scanned: int = 0
    matched: int = 0
    skipped_already_matched: int = 0
    errors: int = 0
    results: list[BatchItemModel] = Field(default_factory=list)


class JobModel(BaseModel):
    """Represents a background batch job."""

    id: str
    type: str
    status: Literal["queued", "running", "completed", "failed"]
    progress: float = Field(ge=0, le=1)
    worker_id: str | None = Field(
        default=None, description="Identifier for the worker processing the job."
    )
    payload: dict[str, Any] | None = Field(
        default=None, description="Batch request forwarded to the worker."
    )
    result: dict[str, Any] | None = Field(
        default=None, description="Batch summary counters recorded on completion."
    )
    created_at: datetime = Field(
        description="Timestamp when the job record was created."
    )
    updated_at: datetime = Field(
        description="Timestamp when the job record was last updated."
    )
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None
    duration_seconds: float | None = Field(
        default=None,
        description="Execution duration calculated from started and finished timestamps.",
    )


class JobMetricsModel(BaseModel):
    """Aggregate statistics for background job processing."""

    total: int = Field(description="Total number of job records persisted in the store.")
    status_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of jobs grouped by current status.",
    )
    type_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of jobs grouped by job type identifier.",
    )
    average_duration_seconds: float | None = Field(
        default=None,
        description="Average duration in seconds for jobs with both start and finish timestamps.",
    )
    last_finished_at: datetime | None = Field(
        default=None,
        description="Timestamp of the most recently finished job regardless of outcome.",
    )
    queue_depth: int = Field(
        default=0,
        description="Number of jobs currently waiting in the Redis queue.",
    )


class JobLogCreate(BaseModel):
    """Payload used to append a new job log entry."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info", description="Severity level of the log entry."
    )
    message: str = Field(..., description="Human-readable log message.")
    context: dict[str, Any] | None = Field(
        default=None,
        description="Optional structured context payload for the log entry.",
    )


class JobLogModel(JobLogCreate):
    """Represents a persisted job log entry."""

    id: int
    job_id: str
    created_at: datetime
