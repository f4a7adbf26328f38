"""
Outbox processor for publishing signals from the outbox table.

OUTBOX-PATTERN: Reads PENDING events from the outbox table and publishes
them to Redis pub/sub. Implements:
- Batch processing for efficiency
- Retry on failures, up to a maximum number of attempts
- FAILED status after max retries (kept for inspection)
- PROCESSING status to prevent double publishing

This processor can run:
1. As a FastAPI background task (lifespan startup)
2. Inside the worker process (cli worker)
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Awaitable, Callable

import redis.asyncio as redis
from sqlalchemy.orm import Session

from costing.models import OutboxEvent, OutboxStatus
from costing.repositories import OutboxRepository
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import (
    AGGREGATE_MENU_ITEM,
    MARGIN_BELOW_THRESHOLD,
    get_redis_pool,
    publish_margin_alert,
)

logger = get_logger(__name__)


class OutboxProcessor:
    """
    Processes outbox events and publishes them to Redis.

    The processor runs in a loop, polling for PENDING events and
    publishing them. It handles:
    - Batch fetching for efficiency
    - Status transitions (PENDING → PROCESSING → PUBLISHED/FAILED)
    - Retry logic
    - Graceful shutdown
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        redis_getter: Callable[[], Awaitable[redis.Redis]] = get_redis_pool,
        batch_size: int | None = None,
        max_retries: int | None = None,
        poll_interval: float | None = None,
    ):
        self._session_factory = session_factory
        self._redis_getter = redis_getter
        self.batch_size = batch_size or settings.outbox_batch_size
        self.max_retries = max_retries or settings.outbox_max_retries
        self.poll_interval = poll_interval or settings.outbox_poll_interval
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the processor loop."""
        if self._running:
            logger.warning("Outbox processor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Outbox processor started")

    async def stop(self) -> None:
        """Stop the processor gracefully."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Outbox processor stopped")

    async def _run_loop(self) -> None:
        """Main processing loop."""
        while self._running:
            try:
                processed = await self.process_batch()
                if processed == 0:
                    # No events, sleep before next poll
                    await asyncio.sleep(self.poll_interval)
                # If we processed events, immediately check for more
            except Exception as e:
                logger.error("Outbox processor error", error=str(e))
                await asyncio.sleep(self.poll_interval)

    async def process_batch(self) -> int:
        """
        Process a batch of PENDING events.

        Returns:
            Number of events published
        """
        db = self._session_factory()
        try:
            events = OutboxRepository(db).claim_pending(self.batch_size)
            if not events:
                return 0
            # Commit the claim so other processors skip these rows
            db.commit()

            processed = 0
            for event in events:
                success = await self._publish_event(event)
                if success:
                    event.status = OutboxStatus.PUBLISHED
                    event.processed_at = datetime.now(timezone.utc)
                    event.last_error = None
                    processed += 1
                else:
                    event.retry_count += 1
                    if event.retry_count >= self.max_retries:
                        event.status = OutboxStatus.FAILED
                        logger.error(
                            "Outbox event failed after max retries",
                            event_id=event.id,
                            event_type=event.event_type,
                        )
                    else:
                        # Back to PENDING for retry
                        event.status = OutboxStatus.PENDING

            db.commit()
            logger.info("Outbox batch processed", total=len(events), published=processed)
            return processed

        except Exception as e:
            db.rollback()
            logger.error("Outbox batch processing failed", error=str(e))
            return 0
        finally:
            db.close()

    async def _publish_event(self, event: OutboxEvent) -> bool:
        """
        Publish a single event to Redis.

        Returns:
            True if published successfully, False otherwise
        """
        try:
            payload = json.loads(event.payload)
            redis_client = await self._redis_getter()

            if (
                event.aggregate_type == AGGREGATE_MENU_ITEM
                and event.event_type == MARGIN_BELOW_THRESHOLD
            ):
                await publish_margin_alert(
                    redis_client,
                    organization_id=event.organization_id,
                    menu_item_id=event.aggregate_id,
                    margin=payload["margin"],
                    threshold=payload["threshold"],
                )
            else:
                event.last_error = f"Unsupported event {event.aggregate_type}/{event.event_type}"
                logger.warning(
                    "Unknown outbox event",
                    aggregate_type=event.aggregate_type,
                    event_type=event.event_type,
                )
                return False

            return True

        except Exception as e:
            event.last_error = str(e)
            logger.error(
                "Failed to publish outbox event",
                event_id=event.id,
                event_type=event.event_type,
                error=str(e),
            )
            return False


# Singleton instance
_processor: OutboxProcessor | None = None


def get_outbox_processor() -> OutboxProcessor:
    """Get the singleton outbox processor instance."""
    global _processor
    if _processor is None:
        _processor = OutboxProcessor()
    return _processor


async def start_outbox_processor() -> None:
    """Start the outbox processor (call in FastAPI lifespan startup)."""
    processor = get_outbox_processor()
    await processor.start()


async def stop_outbox_processor() -> None:
    """Stop the outbox processor (call in FastAPI lifespan shutdown)."""
    processor = get_outbox_processor()
    await processor.stop()
