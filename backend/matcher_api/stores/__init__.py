"""Database-backed stores used by the matcher service."""

from .file_store import FileStore
from .job_log_store import JobLogStore
from .job_store import JobNotFoundError, JobStore
from .lock_store import LockStore
from .scene_store import CatalogStoreError, SceneLink, SceneStore

__all__ = [
    "CatalogStoreError",
    "FileStore",
    "JobLogStore",
    "JobNotFoundError",
    "JobStore",
    "LockStore",
    "SceneLink",
    "SceneStore",
]
