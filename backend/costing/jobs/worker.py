"""
Queue worker pool.

One JobWorker serves one queue with a fixed number of threads. Each thread
claims a job, runs the handler, and reports completion or failure back to
the queue, which owns retry and backoff. Workers share nothing but the
queue and the database engine, so several worker processes can serve the
same queue.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import redis as redis_sync

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.correlation import bind_correlation_id

from .redis_queue import RedisJobQueue
from .types import Job, JobHandler, calculate_delay_with_jitter

logger = get_logger(__name__)


class LockRenewal:
    """
    Keeps the lock of a claimed job alive while its handler runs.

    A daemon thread calls ``queue.extend_lock`` every ``interval`` seconds.
    Once the queue reports the lock lost (the job was handed to another
    worker) renewal stops and ``lost`` becomes true; the handler is not
    interrupted, but its outcome will be discarded by the queue.

    Usage:
        with LockRenewal(queue, job, interval=15.0) as renewal:
            handler(job)
    """

    def __init__(self, queue: RedisJobQueue, job: Job, interval: float):
        self.queue = queue
        self.job = job
        self.interval = interval
        self._stop_event = threading.Event()
        self._lost = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def lost(self) -> bool:
        return self._lost.is_set()

    def __enter__(self) -> "LockRenewal":
        self._thread = threading.Thread(
            target=self._run,
            name=f"lock-{self.job.queue_name}-{self.job.id}",
            daemon=True,
        )
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self.interval):
            try:
                if self.queue.extend_lock(self.job):
                    continue
            except redis_sync.RedisError as e:
                # Keep trying; the lock survives until its current expiry
                logger.warning(
                    "Lock renewal failed",
                    queue=self.job.queue_name,
                    job_id=self.job.id,
                    error=str(e),
                )
                continue
            self._lost.set()
            logger.warning(
                "Job lock lost",
                queue=self.job.queue_name,
                job_id=self.job.id,
                job_name=self.job.name,
            )
            return


class JobWorker:
    """
    Fixed-size pool of threads pulling jobs from one queue.

    Usage:
        worker = JobWorker(queue, QueueNames.COST_UPDATES, processor.process)
        worker.start()
        ...
        worker.stop()
    """

    def __init__(
        self,
        queue: RedisJobQueue,
        queue_name: str,
        handler: JobHandler,
        concurrency: int | None = None,
        poll_interval: float | None = None,
        lock_renew_interval: float | None = None,
    ):
        self.queue = queue
        self.queue_name = queue_name
        self.handler = handler
        self.concurrency = concurrency or settings.queue_concurrency
        self.poll_interval = poll_interval if poll_interval is not None else settings.queue_poll_interval
        # Two renewals per lock duration
        self.lock_renew_interval = lock_renew_interval or settings.queue_lock_duration_ms / 2000
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        self._stop_event = threading.Event()
        self._executor: ThreadPoolExecutor | None = None

    @property
    def is_running(self) -> bool:
        return self._executor is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Start the worker threads."""
        if self._executor is not None:
            logger.warning("Worker already running", queue=self.queue_name)
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix=f"worker-{self.queue_name}",
        )
        for slot in range(self.concurrency):
            self._executor.submit(self._run_loop, slot)
        logger.info("Worker started", queue=self.queue_name, concurrency=self.concurrency)

    def stop(self, wait: bool = True) -> None:
        """
        Stop fetching new jobs.

        Jobs already running finish first when ``wait`` is true; a job cut
        short by process exit is picked up again once its lock expires.
        """
        self._stop_event.set()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("Worker stopped", queue=self.queue_name)

    def wait(self) -> None:
        """Block until stop() is called from another thread or a signal handler."""
        while not self._stop_event.wait(timeout=1.0):
            pass

    def run_once(self) -> Job | None:
        """
        Claim and process at most one job in the calling thread.

        Returns:
            The processed job, or None when the queue was empty
        """
        job = self.queue.fetch_next(self.queue_name)
        if job is None:
            return None
        self._process(job)
        return job

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _run_loop(self, slot: int) -> None:
        consecutive_errors = 0
        while not self._stop_event.is_set():
            try:
                job = self.run_once()
                consecutive_errors = 0
            except redis_sync.RedisError as e:
                delay = calculate_delay_with_jitter(consecutive_errors)
                consecutive_errors += 1
                logger.warning(
                    "Queue unavailable, backing off",
                    queue=self.queue_name,
                    slot=slot,
                    error=str(e),
                    retry_in=round(delay, 2),
                )
                self._stop_event.wait(timeout=delay)
                continue
            except Exception as e:
                logger.error(
                    "Worker loop error",
                    queue=self.queue_name,
                    slot=slot,
                    error=str(e),
                    exc_info=True,
                )
                self._stop_event.wait(timeout=self.poll_interval)
                continue

            if job is None:
                self._stop_event.wait(timeout=self.poll_interval)

    def _process(self, job: Job) -> None:
        with bind_correlation_id(f"job:{job.queue_name}:{job.id}"):
            started = time.monotonic()
            logger.info(
                "Job started",
                job_name=job.name,
                attempt=job.attempts_made + 1,
                max_attempts=job.max_attempts,
            )
            try:
                with LockRenewal(self.queue, job, self.lock_renew_interval):
                    result = self.handler(job)
            except Exception as e:
                status = self.queue.fail(job, e)
                if status is None:
                    logger.warning(
                        "Job failed after its lock was lost, attempt not recorded",
                        job_name=job.name,
                        error=str(e),
                    )
                    return
                logger.error(
                    "Job failed",
                    job_name=job.name,
                    attempt=job.attempts_made,
                    max_attempts=job.max_attempts,
                    next_status=status,
                    error=str(e),
                    exc_info=True,
                )
                return

            if not self.queue.complete(job, result):
                logger.warning(
                    "Job finished after its lock was lost, result discarded",
                    job_name=job.name,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
                return
            logger.info(
                "Job completed",
                job_name=job.name,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
