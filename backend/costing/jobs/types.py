"""
Job queue types.

A job is a named unit of work with an id-only JSON payload. Handlers read
the current state of the ledger when they run, so executing the same job
twice is harmless and the queue can deliver at least once.
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Protocol

from shared.config.constants import JobNames
from shared.config.settings import settings
from shared.utils.exceptions import InvalidJobPayloadError


# =============================================================================
# Constants
# =============================================================================

MIN_PRIORITY: Final[int] = 0
MAX_PRIORITY: Final[int] = 1000

# Payload keys, camelCase to match the job contract shared with other services
KEY_INGREDIENT_ID: Final[str] = "ingredientId"
KEY_RECIPE_ID: Final[str] = "recipeId"
KEY_MENU_ITEM_ID: Final[str] = "menuItemId"
KEY_ORGANIZATION_ID: Final[str] = "organizationId"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class JobOptions:
    """
    Per-enqueue options.

    Attributes:
        priority: Lower value runs first; FIFO within the same priority.
        attempts: Total attempts before the job is marked failed.
        backoff_delay_ms: Delay before the second attempt; doubles on each failure.
        delay_ms: Initial delay before the job becomes runnable.
        dedupe: Coalesce with an identical job that is still waiting.
    """

    priority: int = field(default_factory=lambda: settings.queue_default_priority)
    attempts: int = field(default_factory=lambda: settings.queue_default_attempts)
    backoff_delay_ms: int = field(default_factory=lambda: settings.queue_backoff_delay_ms)
    delay_ms: int = 0
    dedupe: bool = True

    def __post_init__(self) -> None:
        if not MIN_PRIORITY <= self.priority <= MAX_PRIORITY:
            raise ValueError(f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.backoff_delay_ms < 0:
            raise ValueError("backoff_delay_ms must be >= 0")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")


@dataclass
class Job:
    """A job as seen by handlers and administration endpoints."""

    id: str
    queue_name: str
    name: str
    data: dict[str, Any]
    priority: int = 0
    attempts_made: int = 0
    max_attempts: int = 1
    backoff_delay_ms: int = 0
    status: str = ""
    created_at: int = 0
    processed_at: int | None = None
    finished_at: int | None = None
    failed_reason: str | None = None
    return_value: Any = None
    stalled_count: int = 0
    # Claim token of the worker holding the job; None once it leaves the active set
    lock_token: str | None = None

    @classmethod
    def from_hash(cls, queue_name: str, values: dict[str, str]) -> "Job":
        """Build a Job from the Redis hash that stores it."""

        def _optional_int(key: str) -> int | None:
            raw = values.get(key)
            return int(raw) if raw not in (None, "") else None

        raw_return = values.get("return_value")
        return cls(
            id=values["id"],
            queue_name=queue_name,
            name=values.get("name", ""),
            data=json.loads(values.get("data") or "{}"),
            priority=int(values.get("priority", 0)),
            attempts_made=int(values.get("attempts_made", 0)),
            max_attempts=int(values.get("max_attempts", 1)),
            backoff_delay_ms=int(values.get("backoff_delay_ms", 0)),
            status=values.get("status", ""),
            created_at=int(values.get("created_at", 0)),
            processed_at=_optional_int("processed_at"),
            finished_at=_optional_int("finished_at"),
            failed_reason=values.get("failed_reason") or None,
            return_value=json.loads(raw_return) if raw_return else None,
            stalled_count=int(values.get("stalled_count", 0)),
            lock_token=values.get("lock_token") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue": self.queue_name,
            "name": self.name,
            "data": self.data,
            "priority": self.priority,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "status": self.status,
            "created_at": self.created_at,
            "processed_at": self.processed_at,
            "finished_at": self.finished_at,
            "failed_reason": self.failed_reason,
            "return_value": self.return_value,
        }


# Handler contract: receives the job, returns a JSON-serializable result
JobHandler = Callable[[Job], Any]


class JobQueue(Protocol):
    """What the cascade needs from a queue: enqueue one job, or many atomically."""

    def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> str:
        ...

    def enqueue_many(
        self,
        job_name: str,
        payloads: list[dict[str, Any]],
        options: JobOptions | None = None,
    ) -> list[str]:
        ...


# =============================================================================
# Helpers
# =============================================================================


def backoff_delay_ms(base_delay_ms: int, attempts_made: int) -> int:
    """
    Delay before the next attempt after ``attempts_made`` failures.

    >>> [backoff_delay_ms(2000, n) for n in (1, 2, 3)]
    [2000, 4000, 8000]
    """
    if attempts_made < 1:
        return 0
    return base_delay_ms * (2 ** (attempts_made - 1))


def calculate_delay_with_jitter(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter_factor: float = 0.25,
) -> float:
    """
    Exponential delay with ±jitter, used by workers backing off from Redis errors.

    Args:
        attempt: Consecutive failure count (0-indexed).
    """
    capped_delay = min(initial_delay * (2 ** attempt), max_delay)
    jitter_range = capped_delay * jitter_factor
    return max(0.0, capped_delay + random.uniform(-jitter_range, jitter_range))


def dedupe_key(job_name: str, payload: dict[str, Any]) -> str:
    """Stable identity of a job: its name plus its canonical payload."""
    return f"{job_name}:{json.dumps(payload, sort_keys=True, separators=(',', ':'))}"


def require_id(job: Job, key: str) -> int:
    """
    Read a positive integer id from the job payload.

    Raises:
        InvalidJobPayloadError: when the id is missing or malformed
    """
    value = job.data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise InvalidJobPayloadError(job.name, key, job_id=job.id)
    try:
        parsed = int(value)
    except ValueError:
        raise InvalidJobPayloadError(job.name, key, job_id=job.id) from None
    if parsed <= 0:
        raise InvalidJobPayloadError(job.name, key, job_id=job.id)
    return parsed


# Payload builders keep the id-only contract in one place
def ingredient_payload(ingredient_id: int) -> dict[str, int]:
    return {KEY_INGREDIENT_ID: ingredient_id}


def recipe_payload(recipe_id: int) -> dict[str, int]:
    return {KEY_RECIPE_ID: recipe_id}


def menu_item_payload(menu_item_id: int) -> dict[str, int]:
    return {KEY_MENU_ITEM_ID: menu_item_id}


def menu_cascade_payload(menu_item_id: int, organization_id: int) -> dict[str, int]:
    return {KEY_MENU_ITEM_ID: menu_item_id, KEY_ORGANIZATION_ID: organization_id}


PAYLOAD_KEYS: Final[dict[str, tuple[str, ...]]] = {
    JobNames.INVENTORY_BATCH_CHANGE: (KEY_INGREDIENT_ID,),
    JobNames.INGREDIENT_COST_UPDATE: (KEY_INGREDIENT_ID,),
    JobNames.RECIPE_COST_UPDATE: (KEY_RECIPE_ID,),
    JobNames.MENU_COST_UPDATE: (KEY_MENU_ITEM_ID,),
    JobNames.MENU_CASCADE: (KEY_MENU_ITEM_ID, KEY_ORGANIZATION_ID),
}
