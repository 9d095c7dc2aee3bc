"""Entry point for running the SceneMatch RQ worker."""
from __future__ import annotations

import logging
import os

from rq import SimpleWorker, Worker

from backend.matcher_api.services.queue import JobQueueService
from backend.matcher_api.settings import MatcherSettings


def main() -> None:
    """Start an RQ worker connected to the configured matcher queue."""

    settings = MatcherSettings()
    queue_service = JobQueueService(settings)

    # No fork on Windows.
    worker_class = SimpleWorker if os.name == "nt" else Worker
    worker = worker_class(
        [queue_service.queue],
        connection=queue_service.connection,
        name=settings.queue_worker_name,
    )

    logging.basicConfig(level=logging.INFO)
    worker.work(with_scheduler=False)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main()
