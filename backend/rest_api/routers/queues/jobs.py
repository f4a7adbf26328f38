"""
Queue administration router.

Failed jobs stay in Redis until an operator retries or removes them; these
endpoints are the manual side of the retry policy.
"""

from fastapi import APIRouter, Depends, Query, status

from shared.config.constants import Limits, QueueNames
from shared.config.logging import rest_api_logger as logger
from shared.utils.exceptions import JobNotFoundError, NotFoundError
from costing.jobs import RedisJobQueue
from costing.schemas import JobOutput, QueueCleanOutput, QueueCleanRequest, QueueStatsOutput
from rest_api.routers._common import get_queue


router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _ensure_known_queue(queue_name: str) -> None:
    if queue_name not in QueueNames.ALL:
        raise NotFoundError("Queue", queue_name)


@router.get("/{queue_name}/stats", response_model=QueueStatsOutput)
def get_queue_stats(
    queue_name: str,
    queue: RedisJobQueue = Depends(get_queue),
) -> QueueStatsOutput:
    _ensure_known_queue(queue_name)
    return QueueStatsOutput(queue=queue_name, **queue.get_stats(queue_name))


@router.get("/{queue_name}/failed", response_model=list[JobOutput])
def list_failed_jobs(
    queue_name: str,
    limit: int = Query(default=50, ge=1, le=Limits.MAX_PAGE_SIZE),
    queue: RedisJobQueue = Depends(get_queue),
) -> list[JobOutput]:
    """Most recently failed first."""
    _ensure_known_queue(queue_name)
    jobs = queue.get_failed_jobs(queue_name, limit=limit)
    return [JobOutput(**job.to_dict()) for job in jobs]


@router.get("/{queue_name}/{job_id}", response_model=JobOutput)
def get_job(
    queue_name: str,
    job_id: str,
    queue: RedisJobQueue = Depends(get_queue),
) -> JobOutput:
    _ensure_known_queue(queue_name)
    job = queue.get_job(queue_name, job_id)
    if job is None:
        raise JobNotFoundError(queue_name, job_id)
    return JobOutput(**job.to_dict())


@router.post("/{queue_name}/clean", response_model=QueueCleanOutput)
def clean_queue(
    queue_name: str,
    body: QueueCleanRequest,
    queue: RedisJobQueue = Depends(get_queue),
) -> QueueCleanOutput:
    """Drop completed or failed jobs older than the grace period."""
    _ensure_known_queue(queue_name)
    removed = queue.clean(queue_name, body.status, grace_seconds=body.grace_seconds)
    return QueueCleanOutput(queue=queue_name, status=body.status, removed=removed)


@router.post("/{queue_name}/{job_id}/retry", response_model=JobOutput)
def retry_job(
    queue_name: str,
    job_id: str,
    queue: RedisJobQueue = Depends(get_queue),
) -> JobOutput:
    """Move a failed job back to waiting with a fresh attempt budget."""
    _ensure_known_queue(queue_name)
    job = queue.retry_job(queue_name, job_id)
    logger.info("Job retried manually", queue=queue_name, job_id=job_id)
    return JobOutput(**job.to_dict())


@router.delete("/{queue_name}/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_job(
    queue_name: str,
    job_id: str,
    queue: RedisJobQueue = Depends(get_queue),
) -> None:
    _ensure_known_queue(queue_name)
    if not queue.remove_job(queue_name, job_id):
        raise JobNotFoundError(queue_name, job_id)
