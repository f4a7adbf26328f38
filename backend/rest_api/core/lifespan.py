"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.infrastructure.db import engine
from shared.config.settings import settings
from shared.config.logging import setup_logging, rest_api_logger as logger
from shared.infrastructure.events import close_redis_pool
from costing.models import Base
from costing.services.events import start_outbox_processor, stop_outbox_processor


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging()

    config_errors = settings.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error", error=error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with insecure configuration."
            )
        logger.warning("Running with development defaults")

    logger.info("Starting REST API", port=settings.rest_api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    # Margin alerts reach Redis through the outbox; workers only write the rows
    if settings.run_outbox_in_api:
        await start_outbox_processor()
        logger.info("Outbox processor started")

    yield

    logger.info("Shutting down REST API")

    if settings.run_outbox_in_api:
        await stop_outbox_processor()
        logger.info("Outbox processor stopped")

    await close_redis_pool()
    logger.info("Redis connection pools closed")
