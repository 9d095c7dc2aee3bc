"""Catalog store persisting scenes and file links."""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..db import session_scope
from ..models import FileRecord, SceneActionRecord, SceneRecord, utc_now
from ..schemas import SceneListModel, SceneModel


class CatalogStoreError(RuntimeError):
    """Raised when a scene or file link cannot be written."""


@dataclass(frozen=True, slots=True)
class SceneLink:
    """Everything needed to create or update a scene and link a file to it."""

    scene_id: str
    file_id: int
    filename: str
    title: str
    source_url: str
    thumbnail_url: str
    studio: str
    site: str


class SceneStore:
    """Thread-safe accessor for catalog scenes."""

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    def get(self, scene_id: str) -> SceneModel | None:
        """Return a scene by its catalog identifier."""

        with Session(self._engine) as session:
            record = _find(session, scene_id)
            return _to_model(record) if record else None

    def list(
        self,
        *,
        query: str | None = None,
        studio: str | None = None,
        page: int = 1,
        page_size: int = 25,
    ) -> SceneListModel:
        """Return a page of scenes, newest first."""

        filters = []
        if query:
            filters.append(SceneRecord.search_text.like(f"%{query.lower()}%"))
        if studio:
            filters.append(func.lower(SceneRecord.studio) == studio.lower())

        count_statement = select(func.count()).select_from(SceneRecord)
        items_statement = select(SceneRecord)
        for condition in filters:
            count_statement = count_statement.where(condition)
            items_statement = items_statement.where(condition)
        items_statement = (
            items_statement.order_by(SceneRecord.updated_at.desc(), SceneRecord.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        with Session(self._engine) as session:
            total = session.exec(count_statement).one()
            records: Sequence[SceneRecord] = session.exec(items_statement).all()
            items = [_to_model(record) for record in records]
        return SceneListModel(items=items, total=total, page=page, page_size=page_size)

    def apply_match(self, link: SceneLink) -> SceneModel:
        """Create or update the scene and link the file in one transaction.

        Either every change is committed or none is.
        """

        now = utc_now()
        try:
            with self._lock, session_scope(self._engine) as session:
                file = session.get(FileRecord, link.file_id)
                if file is None:
                    raise CatalogStoreError(f"file_id {link.file_id} was not found")
                if file.scene_id is not None:
                    raise CatalogStoreError(f"file_id {link.file_id} is already linked")

                scene = _create_or_update(session, link, now)
                file.scene_id = scene.id
                session.add(file)

                if link.filename not in scene.filenames:
                    scene.filenames = [*scene.filenames, link.filename]
                _record_action(session, scene.scene_id, "match", "filenames", json.dumps(scene.filenames))
                _recompute_status(session, scene)
                session.add(scene)
                session.flush()
                return _to_model(scene)
        except SQLAlchemyError as exc:
            raise CatalogStoreError(f"failed to persist scene {link.scene_id}: {exc}") from exc

    def reindex(self, scene_ids: Iterable[str]) -> None:
        """Refresh the denormalized search text of the given scenes."""

        now = utc_now()
        try:
            with self._lock, session_scope(self._engine) as session:
                for scene_id in scene_ids:
                    record = _find(session, scene_id)
                    if record is None:
                        continue
                    parts = [record.title, record.studio, *record.filenames]
                    record.search_text = " ".join(part for part in parts if part).lower()
                    record.indexed_at = now
                    session.add(record)
        except SQLAlchemyError as exc:
            raise CatalogStoreError(f"failed to reindex scenes: {exc}") from exc


def _find(session: Session, scene_id: str) -> SceneRecord | None:
    return session.exec(select(SceneRecord).where(SceneRecord.scene_id == scene_id)).first()


def _create_or_update(session: Session, link: SceneLink, now: datetime) -> SceneRecord:
    record = _find(session, link.scene_id)
    if record is None:
        record = SceneRecord(
            scene_id=link.scene_id,
            released=now.date().isoformat(),
            added_date=now,
            created_at=now,
        )

    title = link.title.strip()
    if title:
        record.title = title
    record.studio = link.studio
    record.site = link.site
    record.homepage_url = link.source_url.strip()
    record.members_url = link.source_url.strip()

    thumbnail = link.thumbnail_url.strip()
    if thumbnail:
        record.cover_url = thumbnail
        if thumbnail not in record.covers:
            record.covers = [*record.covers, thumbnail]

    record.updated_at = now
    session.add(record)
    session.flush()
    return record


def _record_action(session: Session, scene_id: str, action: str, column: str, value: str) -> None:
    session.add(
        SceneActionRecord(
            scene_id=scene_id,
            action_type=action,
            changed_column=column,
            new_value=value,
        )
    )


def _recompute_status(session: Session, scene: SceneRecord) -> None:
    session.flush()
    linked = session.exec(
        select(func.count()).select_from(FileRecord).where(FileRecord.scene_id == scene.id)
    ).one()
    scene.file_count = linked
    scene.is_available = linked > 0


def _to_model(record: SceneRecord) -> SceneModel:
    return SceneModel(
        id=record.id,
        scene_id=record.scene_id,
        title=record.title,
        studio=record.studio,
        site=record.site,
        homepage_url=record.homepage_url,
        cover_url=record.cover_url,
        covers=list(record.covers or []),
        filenames=list(record.filenames or []),
        released=record.released,
        is_available=record.is_available,
        file_count=record.file_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
