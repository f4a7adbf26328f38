"""
Worker group: one JobWorker per queue, all sharing one processor.
"""

from __future__ import annotations

from shared.config.constants import QueueNames
from shared.config.logging import get_logger

from .processor import CostJobProcessor
from .redis_queue import RedisJobQueue, get_job_queue
from .worker import JobWorker

logger = get_logger(__name__)


class WorkerGroup:
    """
    Usage:
        group = WorkerGroup()
        group.start()
        group.wait()     # until a signal handler calls group.stop()
    """

    def __init__(
        self,
        queue: RedisJobQueue | None = None,
        queue_names: list[str] | None = None,
        concurrency: int | None = None,
        processor: CostJobProcessor | None = None,
    ):
        self.queue = queue or get_job_queue()
        self.processor = processor or CostJobProcessor(queue=self.queue)
        self.workers = [
            JobWorker(self.queue, name, self.processor.process, concurrency=concurrency)
            for name in (queue_names or QueueNames.ALL)
        ]

    def start(self) -> None:
        for worker in self.workers:
            worker.start()
        logger.info(
            "Worker group started",
            queues=[w.queue_name for w in self.workers],
            concurrency=self.workers[0].concurrency if self.workers else 0,
        )

    def stop(self, wait: bool = True) -> None:
        for worker in self.workers:
            worker.stop(wait=wait)
        logger.info("Worker group stopped")

    def wait(self) -> None:
        if self.workers:
            self.workers[0].wait()
