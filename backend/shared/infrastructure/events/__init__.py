"""
Redis infrastructure for queues and pub/sub signals.

- redis_pool.py: sync and async connection pool management
- event_types.py: event type constants for published signals
- event_schema.py: Event envelope
- channels.py: channel naming functions
- publisher.py: publishing to channels
"""

from .event_types import (
    MARGIN_BELOW_THRESHOLD,
    AGGREGATE_MENU_ITEM,
    MAX_EVENT_SIZE,
)

from .event_schema import Event

from .channels import (
    channel_organization_alerts,
)

from .redis_pool import (
    get_redis_pool,
    get_redis_sync_client,
    close_redis_pool,
    close_redis_sync_client,
)

from .publisher import (
    publish_event,
    publish_margin_alert,
)

__all__ = [
    "MARGIN_BELOW_THRESHOLD",
    "AGGREGATE_MENU_ITEM",
    "MAX_EVENT_SIZE",
    "Event",
    "channel_organization_alerts",
    "get_redis_pool",
    "get_redis_sync_client",
    "close_redis_pool",
    "close_redis_sync_client",
    "publish_event",
    "publish_margin_alert",
]
