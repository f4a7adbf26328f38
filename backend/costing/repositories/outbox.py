"""
Outbox Repository - pending signal rows for the outbox processor.
"""

from typing import Sequence
from sqlalchemy import select, update

from costing.models import OutboxEvent, OutboxStatus


class OutboxRepository:
    """Claiming and status updates for outbox rows."""

    def __init__(self, db):
        self._db = db

    def claim_pending(self, batch_size: int) -> Sequence[OutboxEvent]:
        """
        Fetch the oldest PENDING rows and mark them PROCESSING.
        Rows locked by another processor are skipped (PostgreSQL).
        The caller commits the claim.
        """
        events = self._db.execute(
            select(OutboxEvent)
            .where(OutboxEvent.status == OutboxStatus.PENDING)
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        ).scalars().all()

        if events:
            self._db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id.in_([e.id for e in events]))
                .values(status=OutboxStatus.PROCESSING)
            )
        return events

    def find_by_type(self, event_type: str, organization_id: int | None = None) -> Sequence[OutboxEvent]:
        query = select(OutboxEvent).where(OutboxEvent.event_type == event_type)
        if organization_id is not None:
            query = query.where(OutboxEvent.organization_id == organization_id)
        return self._db.execute(query.order_by(OutboxEvent.id)).scalars().all()
