"""File registry backed by the library database."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..models import FileRecord
from ..schemas import FileModel

VIDEO_FILE_TYPE = "video"


@dataclass(slots=True)
class FileStore:
    """Read access to the files the matcher works on."""

    engine: Engine

    def get(self, file_id: int) -> FileModel | None:
        """Return a single file if present."""

        with Session(self.engine) as session:
            record = session.get(FileRecord, file_id)
            return _to_model(record) if record else None

    def find_eligible(
        self,
        *,
        limit: int,
        volume_id: int | None = None,
        path_prefix: str | None = None,
    ) -> list[FileModel]:
        """Unlinked video files, most recently discovered first."""

        statement = (
            select(FileRecord)
            .where(FileRecord.type == VIDEO_FILE_TYPE)
            .where(FileRecord.scene_id.is_(None))
        )
        if volume_id:
            statement = statement.where(FileRecord.volume_id == volume_id)
        prefix = (path_prefix or "").strip()
        if prefix:
            statement = statement.where(FileRecord.path.startswith(prefix, autoescape=True))

        statement = statement.order_by(
            FileRecord.created_time.desc(), FileRecord.id.desc()
        ).limit(limit)
        with Session(self.engine) as session:
            return [_to_model(record) for record in session.exec(statement)]


def _to_model(record: FileRecord) -> FileModel:
    return FileModel(
        id=record.id,
        filename=record.filename,
        path=record.path,
        volume_id=record.volume_id,
        type=record.type,
        scene_id=record.scene_id,
        created_time=record.created_time,
    )
