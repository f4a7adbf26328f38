"""
Event publishing on Redis pub/sub.

Delivery retries are owned by the outbox processor: a failed publish
leaves the outbox row pending, so this module publishes exactly once per
call and lets errors propagate.
"""

from __future__ import annotations

from decimal import Decimal

import redis.asyncio as redis

from shared.config.logging import get_logger
from .channels import channel_organization_alerts
from .event_schema import Event
from .event_types import MARGIN_BELOW_THRESHOLD, MAX_EVENT_SIZE

logger = get_logger(__name__)


def _validate_event_size(event_json: str, event_type: str) -> bool:
    """
    Validate event size before publishing.

    Returns True if valid, raises ValueError if too large.
    """
    size = len(event_json.encode('utf-8'))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )
    return True


async def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: Event,
) -> int:
    """
    Publish an event to a Redis channel.

    Returns:
        Number of subscribers that received the message.

    Raises:
        ValueError: If the event is too large.
        redis.RedisError: If Redis rejects the publish.
    """
    event_json = event.to_json()
    _validate_event_size(event_json, event.type)

    receivers = await redis_client.publish(channel, event_json)
    logger.debug(
        "Event published",
        channel=channel,
        event_type=event.type,
        receivers=receivers,
    )
    return receivers


async def publish_margin_alert(
    redis_client: redis.Redis,
    organization_id: int,
    menu_item_id: int,
    margin: Decimal | str,
    threshold: Decimal | str,
) -> int:
    """Publish MARGIN_BELOW_THRESHOLD to the organization's alert channel."""
    event = Event(
        type=MARGIN_BELOW_THRESHOLD,
        organization_id=organization_id,
        entity={
            "menu_item_id": menu_item_id,
            "margin": str(margin),
            "threshold": str(threshold),
        },
    )
    return await publish_event(
        redis_client, channel_organization_alerts(organization_id), event
    )
