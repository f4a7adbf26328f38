"""
Redis channel naming.

Channels are scoped per organization so a notification dispatcher can
subscribe to one tenant (``costing:org:12:alerts``) or to all of them
with a pattern subscription (``costing:org:*:alerts``).
"""

from __future__ import annotations

CHANNEL_PREFIX = "costing"


def _validate_positive_id(id_value: int, name: str) -> None:
    """Validate that an ID is a positive integer."""
    if not isinstance(id_value, int) or isinstance(id_value, bool) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_organization_alerts(organization_id: int) -> str:
    """Channel for cost/margin alerts of one organization."""
    _validate_positive_id(organization_id, "organization_id")
    return f"{CHANNEL_PREFIX}:org:{organization_id}:alerts"
