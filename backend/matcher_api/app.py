"""Application factory for the SceneMatch API."""
from fastapi import FastAPI

from ..scraper import SiteClient
from .routers import health, jobs, match, scenes
from .services.ranking import Reranker
from .settings import MatcherSettings
from .state import AppState


def create_app(
    settings: MatcherSettings | None = None,
    *,
    site_client: SiteClient | None = None,
    reranker: Reranker | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application."""

    resolved_settings = settings or MatcherSettings()
    app_state = AppState(resolved_settings, site_client=site_client, reranker=reranker)

    app = FastAPI(title="SceneMatch API", version="0.1.0")
    app.state.app_state = app_state
    app.state.settings = app_state.settings

    for router in (
        health.router,
        match.router,
        jobs.router,
        scenes.router,
    ):
        app.include_router(router)

    return app
