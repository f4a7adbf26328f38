"""
Event Schema.

Defines the envelope of every signal published on Redis pub/sub.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class Event:
    """
    Envelope for published signals.

    The 'entity' field carries the event-specific data (ids, margins as
    strings). ``v`` is the schema version for subscribers.
    """

    type: str
    organization_id: int
    entity: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1

    def __post_init__(self) -> None:
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")

        if (
            not isinstance(self.organization_id, int)
            or isinstance(self.organization_id, bool)
            or self.organization_id <= 0
        ):
            raise ValueError("Event organization_id must be a positive integer")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(data, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "Event":
        data = json.loads(raw)
        return cls(
            type=data["type"],
            organization_id=data["organization_id"],
            entity=data.get("entity") or {},
            ts=data.get("ts"),
            v=data.get("v", 1),
        )
