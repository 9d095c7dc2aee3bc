"""Database models for the matcher service."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, JSON
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes stored as naive UTC columns."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class FileRecord(SQLModel, table=True):
    """Video file discovered by the library scan."""

    __tablename__ = "files"

    id: int | None = Field(default=None, primary_key=True)
    filename: str = Field(index=True)
    path: str = Field(default="", index=True)
    volume_id: int = Field(default=0, index=True)
    type: str = Field(default="video", index=True)
    scene_id: int | None = Field(default=None, foreign_key="scenes.id", index=True)
    created_time: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)


class SceneRecord(SQLModel, table=True):
    """Catalog entry a file can be linked to."""

    __tablename__ = "scenes"

    id: int | None = Field(default=None, primary_key=True)
    scene_id: str = Field(index=True, unique=True)
    scraper_id: str = Field(default="custom")
    scene_type: str = Field(default="VR")
    title: str = Field(default="", index=True)
    studio: str = Field(default="", index=True)
    site: str = Field(default="")
    homepage_url: str = Field(default="")
    members_url: str = Field(default="")
    cover_url: str = Field(default="")
    covers: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    filenames: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    released: str = Field(default="")
    is_available: bool = Field(default=False, index=True)
    file_count: int = Field(default=0)
    search_text: str = Field(default="")
    indexed_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    added_date: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)


class SceneActionRecord(SQLModel, table=True):
    """Audit entry describing an automated change to a scene."""

    __tablename__ = "scene_actions"

    id: int | None = Field(default=None, primary_key=True)
    scene_id: str = Field(index=True)
    action_type: str = Field(index=True)
    changed_column: str
    new_value: str
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)


class LockRecord(SQLModel, table=True):
    """Named lock row guarding exclusive runs across processes."""

    __tablename__ = "run_locks"

    name: str = Field(primary_key=True)
    owner: str = Field(default="")
    acquired_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)


class JobRecord(SQLModel, table=True):
    """Background job metadata persisted for orchestration."""

    __tablename__ = "matcher_jobs"

    id: str = Field(primary_key=True, index=True)
    type: str = Field(index=True)
    status: str = Field(default="queued", index=True)
    progress: float = Field(default=0.0)
    worker_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    result: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    started_at: datetime | None = Field(default=None, sa_type=UTCDateTime, index=True)
    finished_at: datetime | None = Field(default=None, sa_type=UTCDateTime, index=True)
    error_message: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)


class JobLogRecord(SQLModel, table=True):
    """Structured log event associated with a background job."""

    __tablename__ = "matcher_job_logs"

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(index=True)
    level: str = Field(default="info", index=True)
    message: str
    context: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
