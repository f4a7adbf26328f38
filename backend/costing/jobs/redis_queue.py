"""
Redis-backed durable job queue.

Key structure per queue (prefix defaults to "costq"):
- {prefix}:{queue}:id (string) - job id sequence
- {prefix}:{queue}:job:{id} (hash) - job record
- {prefix}:{queue}:wait (zset) - runnable jobs, scored by priority then sequence
- {prefix}:{queue}:delayed (zset) - jobs waiting for their backoff, scored by ready time
- {prefix}:{queue}:active (zset) - claimed jobs, scored by lock expiry
- {prefix}:{queue}:completed (zset) - finished jobs, scored by finish time
- {prefix}:{queue}:failed (zset) - jobs that exhausted their attempts, kept for manual retry
- {prefix}:{queue}:dedupe:{name}:{payload} (string) - id of the waiting job with that identity

Usage:
    from costing.jobs import get_job_queue

    queue = get_job_queue()
    queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(7))
    queue.get_stats(QueueNames.COST_UPDATES)
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from typing import Any, Callable

import redis as redis_sync

from shared.config.constants import JobStatus, QueueNames, queue_for_job
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.events import get_redis_sync_client
from shared.utils.exceptions import ConflictError, JobNotFoundError, ValidationError

from .scripts import (
    ENQUEUE_ENTRY_FIELDS,
    PRIORITY_SHIFT,
    complete_script,
    enqueue_script,
    extend_script,
    fail_script,
    fetch_script,
)
from .types import PAYLOAD_KEYS, Job, JobOptions, backoff_delay_ms, dedupe_key

logger = get_logger(__name__)

# Safety expiry for coalescing keys whose job vanished without being claimed
DEDUPE_KEY_TTL_SECONDS = 86400
# Max characters of an exception message stored on a job
MAX_FAILED_REASON_LENGTH = 2000


class RedisJobQueue:
    """
    At-least-once job queue with retries, backoff and failed-job retention.

    Jobs are routed to queues by name (see ``queue_for_job``). Enqueue, claim,
    lock renewal, completion and failure are single Lua calls. Every claim
    stores a fresh token on the job, and only the holder of the current token
    can complete, fail or extend it, so a job is always in exactly one of the
    state sets even when a stalled job was handed to a second worker.
    """

    def __init__(
        self,
        redis_client: redis_sync.Redis | None = None,
        prefix: str | None = None,
        lock_duration_ms: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self._prefix = prefix or settings.queue_prefix
        self._lock_duration_ms = lock_duration_ms or settings.queue_lock_duration_ms
        self._clock = clock

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    @property
    def redis(self) -> redis_sync.Redis:
        if self._redis is None:
            self._redis = get_redis_sync_client()
        return self._redis

    def _key(self, queue_name: str, suffix: str) -> str:
        return f"{self._prefix}:{queue_name}:{suffix}"

    def _job_prefix(self, queue_name: str) -> str:
        return self._key(queue_name, "job:")

    def _job_key(self, queue_name: str, job_id: str) -> str:
        return f"{self._job_prefix(queue_name)}{job_id}"

    def _dedupe_prefix(self, queue_name: str) -> str:
        return self._key(queue_name, "dedupe:")

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Producing
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> str:
        """
        Enqueue one job.

        Returns:
            Job id (the id of the already-waiting job when coalesced)
        """
        return self.enqueue_many(job_name, [payload], options)[0]

    def enqueue_many(
        self,
        job_name: str,
        payloads: list[dict[str, Any]],
        options: JobOptions | None = None,
    ) -> list[str]:
        """
        Enqueue jobs of one type atomically: either all are stored or none is.

        Args:
            job_name: Job type (see JobNames)
            payloads: Id-only payloads, one per job
            options: Priority, attempts and backoff shared by all jobs

        Returns:
            Job ids in payload order
        """
        if not payloads:
            return []

        queue_name = queue_for_job(job_name)
        options = options or JobOptions()
        self._validate_payloads(job_name, payloads)

        entries = [
            {
                "name": job_name,
                "data": json.dumps(payload, sort_keys=True),
                "priority": options.priority,
                "attempts": options.attempts,
                "backoff": options.backoff_delay_ms,
                "delay": options.delay_ms,
                "dedupe_key": dedupe_key(job_name, payload) if options.dedupe else "",
            }
            for payload in payloads
        ]

        raw_ids = enqueue_script(
            self.redis,
            keys=[
                self._key(queue_name, "id"),
                self._key(queue_name, "wait"),
                self._key(queue_name, "delayed"),
            ],
            args=[
                self._job_prefix(queue_name),
                self._dedupe_prefix(queue_name),
                self._now_ms(),
                DEDUPE_KEY_TTL_SECONDS,
                *(entry[field] for entry in entries for field in ENQUEUE_ENTRY_FIELDS),
            ],
        )
        job_ids = [str(job_id) for job_id in raw_ids]

        logger.info(
            "Jobs enqueued",
            queue=queue_name,
            job_name=job_name,
            count=len(job_ids),
            job_ids=job_ids if len(job_ids) <= 10 else f"{job_ids[:10]}...",
        )
        return job_ids

    @staticmethod
    def _validate_payloads(job_name: str, payloads: list[dict[str, Any]]) -> None:
        """Payloads must carry exactly the identifiers of their job type."""
        expected = set(PAYLOAD_KEYS[job_name])
        for payload in payloads:
            if set(payload) != expected:
                raise ValidationError(
                    f"{job_name} payload must contain exactly {sorted(expected)}",
                    job_name=job_name,
                    payload_keys=sorted(payload),
                )

    # -------------------------------------------------------------------------
    # Consuming
    # -------------------------------------------------------------------------

    def fetch_next(self, queue_name: str) -> Job | None:
        """
        Claim the next runnable job of a queue, or None when the queue is idle.

        The job stays locked for the configured lock duration. The worker
        renews the lock with ``extend_lock`` while it runs; a job whose lock
        expired is considered stalled and handed out again under a new token.
        """
        token = uuid.uuid4().hex
        job_id = fetch_script(
            self.redis,
            keys=[
                self._key(queue_name, "wait"),
                self._key(queue_name, "delayed"),
                self._key(queue_name, "active"),
            ],
            args=[
                self._now_ms(),
                self._lock_duration_ms,
                self._job_prefix(queue_name),
                self._dedupe_prefix(queue_name),
                token,
            ],
        )
        if not job_id:
            return None
        job = self.get_job(queue_name, str(job_id))
        if job is not None:
            job.lock_token = token
        return job

    def extend_lock(self, job: Job) -> bool:
        """
        Push the lock expiry of a claimed job one lock duration into the future.

        Returns:
            False when the lock was lost, i.e. the job was handed to another worker
        """
        extended = extend_script(
            self.redis,
            keys=[self._key(job.queue_name, "active"), self._job_key(job.queue_name, job.id)],
            args=[job.id, job.lock_token or "", self._now_ms() + self._lock_duration_ms],
        )
        return bool(extended)

    def complete(self, job: Job, result: Any = None) -> bool:
        """
        Mark an active job completed and apply completed-job retention.

        Returns:
            False when the lock was lost; the job is left to its new holder
        """
        now = self._now_ms()
        queue_name = job.queue_name
        completed = complete_script(
            self.redis,
            keys=[
                self._key(queue_name, "active"),
                self._key(queue_name, "completed"),
                self._job_key(queue_name, job.id),
            ],
            args=[
                job.id,
                job.lock_token or "",
                now,
                json.dumps(result, default=str),
                settings.queue_completed_retention_seconds,
                settings.queue_completed_retention_count,
            ],
        )
        if not completed:
            return False

        job.status = JobStatus.COMPLETED
        job.finished_at = now
        job.return_value = result
        job.lock_token = None
        return True

    def fail(self, job: Job, error: BaseException | str) -> str | None:
        """
        Record a failed attempt.

        Schedules the next attempt with exponential backoff while attempts
        remain; otherwise moves the job to the failed set, where it stays
        until an operator retries, removes or cleans it.

        Returns:
            The job's new status ("delayed" or "failed"), or None when the
            lock was lost and the attempt was not recorded
        """
        now = self._now_ms()
        queue_name = job.queue_name
        attempts_made = job.attempts_made + 1
        reason = str(error)[:MAX_FAILED_REASON_LENGTH] or error.__class__.__name__
        retry_at: int | str = ""
        if attempts_made < job.max_attempts:
            retry_at = now + backoff_delay_ms(job.backoff_delay_ms, attempts_made)

        status = fail_script(
            self.redis,
            keys=[
                self._key(queue_name, "active"),
                self._key(queue_name, "delayed"),
                self._key(queue_name, "failed"),
                self._job_key(queue_name, job.id),
            ],
            args=[job.id, job.lock_token or "", now, attempts_made, reason, retry_at],
        )
        if not status:
            return None

        job.attempts_made = attempts_made
        job.failed_reason = reason
        job.status = str(status)
        job.lock_token = None
        if job.status == JobStatus.FAILED:
            job.finished_at = now
        return job.status

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def get_job(self, queue_name: str, job_id: str) -> Job | None:
        values = self.redis.hgetall(self._job_key(queue_name, job_id))
        if not values:
            return None
        return Job.from_hash(queue_name, values)

    def get_stats(self, queue_name: str) -> dict[str, int]:
        """Job counts per state for monitoring."""
        pipe = self.redis.pipeline(transaction=False)
        for state in ("wait", "active", "delayed", "completed", "failed"):
            pipe.zcard(self._key(queue_name, state))
        waiting, active, delayed, completed, failed = pipe.execute()
        return {
            "waiting": int(waiting),
            "active": int(active),
            "delayed": int(delayed),
            "completed": int(completed),
            "failed": int(failed),
        }

    def get_failed_jobs(self, queue_name: str, limit: int = 50) -> list[Job]:
        """Most recently failed jobs first."""
        job_ids = self.redis.zrevrange(self._key(queue_name, "failed"), 0, max(limit, 1) - 1)
        if not job_ids:
            return []
        pipe = self.redis.pipeline(transaction=False)
        for job_id in job_ids:
            pipe.hgetall(self._job_key(queue_name, job_id))
        return [
            Job.from_hash(queue_name, values)
            for values in pipe.execute()
            if values
        ]

    def retry_job(self, queue_name: str, job_id: str) -> Job:
        """
        Put a failed job back in the wait set with a fresh attempt budget.

        Raises:
            JobNotFoundError: job does not exist
            ConflictError: job is not in the failed state
        """
        job = self.get_job(queue_name, job_id)
        if job is None:
            raise JobNotFoundError(queue_name, job_id)
        if self.redis.zscore(self._key(queue_name, "failed"), job_id) is None:
            raise ConflictError(
                f"Job {job_id} is {job.status or 'unknown'}, only failed jobs can be retried",
                queue=queue_name,
                job_id=job_id,
            )

        seq = int(self.redis.hget(self._job_key(queue_name, job_id), "seq") or job_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._key(queue_name, "failed"), job_id)
        pipe.hset(self._job_key(queue_name, job_id), mapping={
            "status": JobStatus.WAITING,
            "attempts_made": 0,
            "failed_reason": "",
            "finished_at": "",
        })
        pipe.zadd(self._key(queue_name, "wait"), {job_id: job.priority * PRIORITY_SHIFT + seq})
        pipe.execute()

        logger.info("Failed job resubmitted", queue=queue_name, job_id=job_id, job_name=job.name)
        job.status = JobStatus.WAITING
        job.attempts_made = 0
        job.failed_reason = None
        job.finished_at = None
        return job

    def remove_job(self, queue_name: str, job_id: str) -> bool:
        """Delete a job from every state set. Returns False if it did not exist."""
        job_key = self._job_key(queue_name, job_id)
        dedupe = self.redis.hget(job_key, "dedupe_key")

        pipe = self.redis.pipeline(transaction=True)
        for state in ("wait", "active", "delayed", "completed", "failed"):
            pipe.zrem(self._key(queue_name, state), job_id)
        pipe.delete(job_key)
        results = pipe.execute()

        if dedupe:
            dedupe_full_key = f"{self._dedupe_prefix(queue_name)}{dedupe}"
            if self.redis.get(dedupe_full_key) == job_id:
                self.redis.delete(dedupe_full_key)

        removed = bool(results[-1])
        if removed:
            logger.info("Job removed", queue=queue_name, job_id=job_id)
        return removed

    def clean(
        self,
        queue_name: str,
        status: str,
        grace_seconds: int | None = None,
        limit: int = 1000,
    ) -> int:
        """
        Delete completed or failed jobs that finished more than ``grace_seconds`` ago.

        Returns:
            Number of jobs deleted
        """
        if status not in JobStatus.CLEANABLE:
            raise ValidationError(
                f"Only {sorted(JobStatus.CLEANABLE)} jobs can be cleaned",
                status=status,
            )
        if grace_seconds is None:
            grace_seconds = settings.queue_failed_clean_grace_seconds

        set_key = self._key(queue_name, status)
        cutoff = self._now_ms() - grace_seconds * 1000
        job_ids = self.redis.zrangebyscore(set_key, "-inf", cutoff, start=0, num=limit)
        if not job_ids:
            return 0

        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(set_key, *job_ids)
        pipe.delete(*[self._job_key(queue_name, job_id) for job_id in job_ids])
        pipe.execute()

        logger.info("Queue cleaned", queue=queue_name, status=status, removed=len(job_ids))
        return len(job_ids)

    def get_all_stats(self) -> dict[str, dict[str, int]]:
        return {queue_name: self.get_stats(queue_name) for queue_name in QueueNames.ALL}


# =============================================================================
# Global Instance
# =============================================================================

_job_queue: RedisJobQueue | None = None
_job_queue_lock = threading.Lock()


def get_job_queue() -> RedisJobQueue:
    """Get the process-wide queue backed by the shared sync Redis pool."""
    global _job_queue
    if _job_queue is None:
        with _job_queue_lock:
            if _job_queue is None:
                _job_queue = RedisJobQueue()
    return _job_queue
