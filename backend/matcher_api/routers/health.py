"""Health endpoints."""
from fastapi import APIRouter, Depends

from ..dependencies import get_job_queue, get_run_lock
from ..schemas import HealthStatus, QueueHealthStatus
from ..services.batch import RunLock
from ..services.queue import JobQueueService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthStatus)
def get_health(
    queue: JobQueueService = Depends(get_job_queue),
    run_lock: RunLock = Depends(get_run_lock),
) -> HealthStatus:
    """Return service heartbeat information."""

    queue_status = QueueHealthStatus(status="ok")
    if not queue.ping():
        queue_status = QueueHealthStatus(status="error", detail="queue_unreachable")
    return HealthStatus(queue=queue_status, batch_running=run_lock.is_held())
