"""
Durable job queue for the cost cascade.

- types.py: Job, JobOptions, payload builders, backoff
- scripts.py: atomic Lua scripts for enqueue, claim and lock-guarded completion
- redis_queue.py: RedisJobQueue
- worker.py: JobWorker thread pool, LockRenewal heartbeat
- processor.py: CostJobProcessor, job name -> cascade stage
- runner.py: WorkerGroup, one worker per queue

processor and runner depend on the cascade services, which depend on this
package; import them by module path.
"""

from .types import Job, JobHandler, JobOptions, JobQueue, backoff_delay_ms
from .redis_queue import RedisJobQueue, get_job_queue
from .worker import JobWorker, LockRenewal

__all__ = [
    "Job",
    "JobHandler",
    "JobOptions",
    "JobQueue",
    "backoff_delay_ms",
    "RedisJobQueue",
    "get_job_queue",
    "JobWorker",
    "LockRenewal",
]
