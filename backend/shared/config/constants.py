"""
Centralized constants for the costing backend.
Avoids magic strings for job names, queue names and audit reasons.

Usage:
    from shared.config.constants import JobNames, QueueNames, queue_for_job

    queue_for_job(JobNames.RECIPE_COST_UPDATE)  # "cost-updates"
"""

from typing import Final


# =============================================================================
# Cascade jobs
# =============================================================================


class JobNames:
    """Job type constants. Payloads carry identifiers only."""

    INVENTORY_BATCH_CHANGE: Final[str] = "INVENTORY_BATCH_CHANGE"  # {ingredientId}
    INGREDIENT_COST_UPDATE: Final[str] = "INGREDIENT_COST_UPDATE"  # {ingredientId}
    RECIPE_COST_UPDATE: Final[str] = "RECIPE_COST_UPDATE"  # {recipeId}
    MENU_COST_UPDATE: Final[str] = "MENU_COST_UPDATE"  # {menuItemId}
    MENU_CASCADE: Final[str] = "MENU_CASCADE"  # {menuItemId, organizationId}

    ALL: Final[list[str]] = [
        INVENTORY_BATCH_CHANGE,
        INGREDIENT_COST_UPDATE,
        RECIPE_COST_UPDATE,
        MENU_COST_UPDATE,
        MENU_CASCADE,
    ]


class QueueNames:
    """Queue names. Each queue gets its own worker pool."""

    INVENTORY: Final[str] = "inventory"
    COST_UPDATES: Final[str] = "cost-updates"
    MENU_CASCADE: Final[str] = "menu-cascade"

    ALL: Final[list[str]] = [INVENTORY, COST_UPDATES, MENU_CASCADE]


JOB_QUEUES: Final[dict[str, str]] = {
    JobNames.INVENTORY_BATCH_CHANGE: QueueNames.INVENTORY,
    JobNames.INGREDIENT_COST_UPDATE: QueueNames.COST_UPDATES,
    JobNames.RECIPE_COST_UPDATE: QueueNames.COST_UPDATES,
    JobNames.MENU_COST_UPDATE: QueueNames.COST_UPDATES,
    JobNames.MENU_CASCADE: QueueNames.MENU_CASCADE,
}


def queue_for_job(job_name: str) -> str:
    """Return the queue a job type is routed to."""
    try:
        return JOB_QUEUES[job_name]
    except KeyError:
        raise ValueError(f"Unknown job type: {job_name}") from None


class JobStatus:
    """Lifecycle states stored on a job record."""

    WAITING: Final[str] = "waiting"
    DELAYED: Final[str] = "delayed"
    ACTIVE: Final[str] = "active"
    COMPLETED: Final[str] = "completed"
    FAILED: Final[str] = "failed"

    CLEANABLE: Final[frozenset[str]] = frozenset({COMPLETED, FAILED})


# =============================================================================
# Audit reasons
# =============================================================================


class CostHistoryReason:
    """Reasons written to ingredient_cost_history."""

    INITIAL_SETUP: Final[str] = "Initial Setup"
    MANUAL_PRICE_UPDATE: Final[str] = "Manual Price Update"
    INVENTORY_REVALUATION: Final[str] = "Inventory Revaluation"


# =============================================================================
# Validation Limits
# =============================================================================


class Limits:
    """Validation limits."""

    MAX_NAME_LENGTH: Final[int] = 200
    MAX_UNIT_LENGTH: Final[int] = 32
    MAX_RECIPE_LINES: Final[int] = 200
    MAX_PAGE_SIZE: Final[int] = 200
    MAX_REASON_LENGTH: Final[int] = 500
