"""
Outbox service for transactional signal publishing.

OUTBOX-PATTERN: signals are written to the outbox table with the same
session (and therefore the same transaction) as the ledger change that
produced them. The outbox processor publishes them afterwards.

Usage in a cascade stage:
    1. Update the menu item's computed cost and margin
    2. Call write_outbox_event() with the same db session
    3. Commit: both the new margin and its alert are saved, or neither is
"""

import json
from typing import Any

from sqlalchemy.orm import Session

from costing.models import OutboxEvent, OutboxStatus
from costing.services.costing.margin_monitor import MarginAlert
from shared.config.logging import get_logger
from shared.infrastructure.events import AGGREGATE_MENU_ITEM, MARGIN_BELOW_THRESHOLD

logger = get_logger(__name__)


def write_outbox_event(
    db: Session,
    organization_id: int,
    event_type: str,
    aggregate_type: str,
    aggregate_id: int,
    payload: dict[str, Any],
) -> OutboxEvent:
    """
    Write an event to the outbox table.

    MUST be called within the same transaction as the business operation.
    The event will be published by the outbox processor.

    Args:
        db: SQLAlchemy session (same session as business operation)
        organization_id: Organization the signal belongs to
        event_type: Event type constant (e.g., MARGIN_BELOW_THRESHOLD)
        aggregate_type: Type of aggregate (e.g., "menu_item")
        aggregate_id: ID of the aggregate
        payload: Event payload as dict (will be JSON serialized)

    Returns:
        The created OutboxEvent instance
    """
    outbox_event = OutboxEvent(
        organization_id=organization_id,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        payload=json.dumps(payload),
        status=OutboxStatus.PENDING,
        retry_count=0,
    )
    db.add(outbox_event)
    # Don't flush/commit - let the caller control the transaction
    logger.debug(
        "Outbox event queued",
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
    )
    return outbox_event


class OutboxMarginAlertPublisher:
    """
    Margin alert publisher that writes MARGIN_BELOW_THRESHOLD outbox rows.

    Bound to the session of the menu cost update, so the alert is only
    ever published for an update that committed.
    """

    def __init__(self, db: Session):
        self._db = db

    def publish(self, alert: MarginAlert) -> None:
        write_outbox_event(
            db=self._db,
            organization_id=alert.organization_id,
            event_type=MARGIN_BELOW_THRESHOLD,
            aggregate_type=AGGREGATE_MENU_ITEM,
            aggregate_id=alert.menu_item_id,
            payload=alert.to_payload(),
        )
