"""
Dependency probes for the detailed health endpoint.
"""

from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy import text

from shared.config.settings import settings
from shared.utils.health import health_check_with_timeout
from .redis_pool import get_redis_pool


@health_check_with_timeout(timeout=3.0, component="redis")
async def check_redis_health() -> dict[str, Any]:
    pool = await get_redis_pool()
    await pool.ping()
    return {"max_connections": settings.redis_pool_max_connections}


@health_check_with_timeout(timeout=3.0, component="database")
async def check_database_health(session_factory) -> dict[str, Any]:
    """SELECT 1 on a fresh session, run off the event loop."""

    def _ping() -> None:
        with session_factory() as db:
            db.execute(text("SELECT 1"))

    await asyncio.to_thread(_ping)
    return {}


@health_check_with_timeout(timeout=3.0, component="job_queue")
async def check_job_queue_health(queue) -> dict[str, Any]:
    """Per-queue job counts; any Redis error marks the queue unhealthy."""
    return await asyncio.to_thread(queue.get_all_stats)
