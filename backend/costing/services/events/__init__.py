"""
Outbox-based delivery of cost signals.

- outbox_service.py: write_outbox_event() and the margin alert publisher
- outbox_processor.py: OutboxProcessor, publishing pending rows to Redis
"""

from .outbox_service import OutboxMarginAlertPublisher, write_outbox_event
from .outbox_processor import (
    OutboxProcessor,
    get_outbox_processor,
    start_outbox_processor,
    stop_outbox_processor,
)

__all__ = [
    "OutboxMarginAlertPublisher",
    "write_outbox_event",
    "OutboxProcessor",
    "get_outbox_processor",
    "start_outbox_processor",
    "stop_outbox_processor",
]
