"""Collaborator interfaces consumed by the matcher."""
from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from ...scraper.models import Candidate
from ..schemas import FileModel, SceneModel
from ..stores.scene_store import SceneLink


class FileRegistry(Protocol):
    def get(self, file_id: int) -> FileModel | None:
        ...

    def find_eligible(
        self,
        *,
        limit: int,
        volume_id: int | None = None,
        path_prefix: str | None = None,
    ) -> list[FileModel]:
        ...


class CatalogStore(Protocol):
    def get(self, scene_id: str) -> SceneModel | None:
        ...

    def apply_match(self, link: SceneLink) -> SceneModel:
        """Create or update the scene and link the file atomically."""
        ...

    def reindex(self, scene_ids: Iterable[str]) -> None:
        ...


class CatalogSite(Protocol):
    def search(self, query: str, limit: int = 5) -> Sequence[Candidate]:
        ...

    def enrich(self, candidate: Candidate) -> Candidate:
        ...
