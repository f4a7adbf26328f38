"""
FastAPI dependencies shared across routers.

Tests replace get_queue through app.dependency_overrides, so routers must
never call get_job_queue() directly.
"""

from costing.jobs import JobQueue, get_job_queue


def get_queue() -> JobQueue:
    return get_job_queue()
