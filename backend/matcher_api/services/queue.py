"""Redis-backed job queue integration for the matcher service."""
from __future__ import annotations

from typing import Any

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from ..schemas import JobModel
from ..settings import MatcherSettings
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from .tasks import execute_matcher_job


class JobQueueError(RuntimeError):
    """Raised when the queue cannot accept a job."""


class JobQueueService:
    """Encapsulates the Redis queue connection and enqueue workflow."""

    def __init__(self, settings: MatcherSettings) -> None:
        self._settings = settings
        self._connection = self._create_connection(settings)
        self._queue = Queue(settings.redis_queue_name, connection=self._connection)

    @staticmethod
    def _create_connection(settings: MatcherSettings) -> Redis:
        """Instantiate a Redis connection, supporting fakeredis for tests."""

        url = settings.redis_url
        if url.startswith("fakeredis://"):
            import fakeredis

            return fakeredis.FakeRedis()
        return Redis.from_url(url)

    @property
    def queue(self) -> Queue:
        """Expose the underlying RQ queue for workers and diagnostics."""

        return self._queue

    @property
    def connection(self) -> Redis:
        return self._connection

    def ping(self) -> bool:
        """Check whether the queue backend is reachable."""

        try:
            return bool(self._connection.ping())
        except RedisError:
            return False

    def enqueue(
        self,
        job_store: JobStore,
        log_store: JobLogStore,
        job_type: str,
        payload: dict[str, Any] | None = None,
    ) -> JobModel:
        """Persist a job and enqueue it for asynchronous execution."""

        job = job_store.enqueue(job_type, payload)
        log_store.append(
            job.id,
            f"Job {job_type} enqueued",
            context={"payload": payload} if payload else None,
        )

        try:
            self._queue.enqueue(
                execute_matcher_job,
                job_id=job.id,
                job_timeout=self._settings.queue_job_timeout,
                kwargs={
                    "job_id": job.id,
                    "job_type": job_type,
                    "payload": payload,
                    "settings": self._settings.model_dump(),
                    "worker_name": self._settings.queue_worker_name,
                },
            )
        except RedisError as exc:  # pragma: no cover - failure path
            log_store.append(
                job.id, "Failed to enqueue job", level="error", context={"error": str(exc)}
            )
            job_store.mark_failed(job.id, error_message="queue_unavailable")
            raise JobQueueError("Unable to enqueue job") from exc

        return job
