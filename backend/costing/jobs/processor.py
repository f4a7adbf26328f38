"""
Job processor: routes each cascade job to its stage.

One database session per job. The stage commits its own transaction and
dispatches the next stage afterwards; any exception propagates to the
worker, which records the failure and lets the queue retry the job.
"""

from __future__ import annotations

from typing import Any, Callable

from sqlalchemy.orm import Session

from shared.config.constants import JobNames
from shared.config.logging import StructuredLogger, worker_logger
from shared.infrastructure.db import SessionLocal
from costing.services.costing import (
    BranchMenuPropagator,
    CascadeDispatcher,
    InventoryValuationCalculator,
    MarginAlertPublisher,
    MarginThresholdMonitor,
    MenuCostCalculator,
    RecipeCostCalculator,
)
from costing.services.events import OutboxMarginAlertPublisher

from .types import (
    KEY_INGREDIENT_ID,
    KEY_MENU_ITEM_ID,
    KEY_ORGANIZATION_ID,
    KEY_RECIPE_ID,
    Job,
    JobQueue,
    require_id,
)


class CostJobProcessor:
    """
    Usage:
        processor = CostJobProcessor(queue=get_job_queue())
        JobWorker(queue, QueueNames.COST_UPDATES, processor.process).start()
    """

    def __init__(
        self,
        queue: JobQueue,
        session_factory: Callable[[], Session] = SessionLocal,
        alert_publisher_factory: Callable[[Session], MarginAlertPublisher] = OutboxMarginAlertPublisher,
        logger: StructuredLogger | None = None,
    ):
        self._queue = queue
        self._session_factory = session_factory
        self._alert_publisher_factory = alert_publisher_factory
        self._logger = logger or worker_logger
        self._routes: dict[str, Callable[[Session, Job], dict[str, Any]]] = {
            JobNames.INVENTORY_BATCH_CHANGE: self._inventory_batch_change,
            JobNames.INGREDIENT_COST_UPDATE: self._ingredient_cost_update,
            JobNames.RECIPE_COST_UPDATE: self._recipe_cost_update,
            JobNames.MENU_COST_UPDATE: self._menu_cost_update,
            JobNames.MENU_CASCADE: self._menu_cascade,
        }

    def process(self, job: Job) -> dict[str, Any]:
        """
        Run the stage for ``job`` and return a JSON-serializable summary.

        Raises:
            ValueError: unknown job name
            InvalidJobPayloadError: payload lacks the stage's id
        """
        route = self._routes.get(job.name)
        if route is None:
            raise ValueError(f"Unknown job type: {job.name}")

        db = self._session_factory()
        try:
            return route(db, job)
        finally:
            db.close()

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _dispatcher(self, db: Session) -> CascadeDispatcher:
        return CascadeDispatcher(db, self._queue)

    def _inventory_batch_change(self, db: Session, job: Job) -> dict[str, Any]:
        ingredient_id = require_id(job, KEY_INGREDIENT_ID)
        changed = InventoryValuationCalculator(db, self._dispatcher(db)).recalculate(ingredient_id)
        return {"ingredientId": ingredient_id, "costChanged": changed}

    def _ingredient_cost_update(self, db: Session, job: Job) -> dict[str, Any]:
        ingredient_id = require_id(job, KEY_INGREDIENT_ID)
        job_ids = self._dispatcher(db).fan_out_ingredient(ingredient_id)
        return {"ingredientId": ingredient_id, "recipeJobs": len(job_ids)}

    def _recipe_cost_update(self, db: Session, job: Job) -> dict[str, Any]:
        recipe_id = require_id(job, KEY_RECIPE_ID)
        result = RecipeCostCalculator(db, self._dispatcher(db)).recalculate(recipe_id)
        return {
            "recipeId": recipe_id,
            "totalCost": str(result.total_cost),
            "costPerPortion": str(result.cost_per_portion),
            "version": result.version,
        }

    def _menu_cost_update(self, db: Session, job: Job) -> dict[str, Any]:
        menu_item_id = require_id(job, KEY_MENU_ITEM_ID)
        monitor = MarginThresholdMonitor([self._alert_publisher_factory(db)])
        result = MenuCostCalculator(db, monitor).recalculate(menu_item_id)
        return {
            "menuItemId": menu_item_id,
            "status": result.status,
            "computedCost": str(result.computed_cost) if result.computed_cost is not None else None,
            "margin": str(result.margin) if result.margin is not None else None,
            "alert": result.alert_raised,
        }

    def _menu_cascade(self, db: Session, job: Job) -> dict[str, Any]:
        menu_item_id = require_id(job, KEY_MENU_ITEM_ID)
        organization_id = require_id(job, KEY_ORGANIZATION_ID)
        result = BranchMenuPropagator(db).propagate(menu_item_id, organization_id)
        return {
            "menuItemId": menu_item_id,
            "branchesProcessed": result.branches_processed,
            "totalBranches": result.total_branches,
        }
