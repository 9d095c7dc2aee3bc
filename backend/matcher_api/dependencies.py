"""FastAPI dependencies for the matcher API."""
from fastapi import Depends, Request

from .services.batch import BatchMatcher, RunLock
from .services.matcher import FileMatcher
from .services.queue import JobQueueService
from .state import AppState
from .stores.job_log_store import JobLogStore
from .stores.job_store import JobStore
from .stores.scene_store import SceneStore


def get_app_state(request: Request) -> AppState:
    """Resolve the shared application state from the FastAPI request."""
    return request.app.state.app_state


def get_job_store(app_state: AppState = Depends(get_app_state)) -> JobStore:
    return app_state.job_store


def get_job_log_store(app_state: AppState = Depends(get_app_state)) -> JobLogStore:
    return app_state.job_log_store


def get_job_queue(app_state: AppState = Depends(get_app_state)) -> JobQueueService:
    return app_state.job_queue


def get_scene_store(app_state: AppState = Depends(get_app_state)) -> SceneStore:
    return app_state.scene_store


def get_matcher(app_state: AppState = Depends(get_app_state)) -> FileMatcher:
    """Return the single-file matcher."""
    return app_state.matcher


def get_batch_matcher(app_state: AppState = Depends(get_app_state)) -> BatchMatcher:
    return app_state.batch


def get_run_lock(app_state: AppState = Depends(get_app_state)) -> RunLock:
    return app_state.run_lock
