"""Read endpoints for matched catalog scenes."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_scene_store
from ..schemas import SceneListModel, SceneModel
from ..stores.scene_store import SceneStore

router = APIRouter(prefix="/scenes", tags=["scenes"])


@router.get("", response_model=SceneListModel)
def list_scenes(
    query: str | None = Query(default=None, description="Optional title, studio or filename term."),
    studio: str | None = Query(default=None, description="Filter by studio name."),
    page: int = Query(default=1, ge=1, description="Page number starting at 1."),
    page_size: int = Query(
        default=25,
        ge=1,
        le=100,
        description="Number of scenes to return per page.",
    ),
    store: SceneStore = Depends(get_scene_store),
) -> SceneListModel:
    """Return paginated scenes, most recently updated first."""

    return store.list(query=query, studio=studio, page=page, page_size=page_size)


@router.get("/{scene_id}", response_model=SceneModel)
def get_scene(scene_id: str, store: SceneStore = Depends(get_scene_store)) -> SceneModel:
    scene = store.get(scene_id)
    if scene is None:
        raise HTTPException(status_code=404, detail="Scene not found")
    return scene
