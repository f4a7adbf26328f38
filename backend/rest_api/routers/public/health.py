"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events.health_checks import (
    check_database_health,
    check_job_queue_health,
    check_redis_health,
)
from shared.utils.health import HealthStatus, aggregate_health_checks
from costing.jobs import RedisJobQueue
from rest_api.routers._common import get_queue


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """Liveness probe; touches no dependency."""
    return {
        "status": HealthStatus.HEALTHY.value,
        "service": "costing-api",
        "environment": settings.environment,
    }


@router.get("/health/detailed")
async def detailed_health_check(queue: RedisJobQueue = Depends(get_queue)):
    """
    Readiness probe: database, Redis and per-queue job counts.

    Returns 503 when any dependency is unhealthy.
    """
    results = await aggregate_health_checks([
        check_database_health(SessionLocal),
        check_redis_health(),
        check_job_queue_health(queue),
    ])

    body = {
        "service": "costing-api",
        "environment": settings.environment,
        "status": results["status"],
        "dependencies": results["components"],
    }
    if results["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=body, status_code=503)
    return body
