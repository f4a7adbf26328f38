"""
Cascade Dispatcher.

Turns "something below changed" into jobs for the stage above:

    batch change      -> INVENTORY_BATCH_CHANGE {ingredientId}
    ingredient cost   -> INGREDIENT_COST_UPDATE {ingredientId}
                      -> RECIPE_COST_UPDATE {recipeId}, one per recipe using it
    recipe cost       -> MENU_COST_UPDATE {menuItemId}, one per active menu item
    menu approval     -> MENU_CASCADE {menuItemId, organizationId}

Payloads carry ids only; every stage re-reads the ledger when it runs.
Callers invoke the dispatcher after their own transaction has committed.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from shared.config.constants import JobNames
from shared.config.logging import StructuredLogger, cascade_logger
from costing.jobs.types import (
    JobQueue,
    ingredient_payload,
    menu_cascade_payload,
    menu_item_payload,
    recipe_payload,
)
from costing.repositories import (
    CompanySettingsRepository,
    IngredientRepository,
    MenuItemRepository,
)


class CascadeDispatcher:
    """
    Enqueues the next cascade stage.

    Fan-outs enumerate every affected id first and then enqueue them in one
    atomic bulk call: if enumeration or the enqueue fails, the triggering job
    fails as a whole and is retried, never leaving half a fan-out behind.
    """

    def __init__(
        self,
        db: Session,
        queue: JobQueue,
        logger: StructuredLogger | None = None,
    ):
        self._db = db
        self._queue = queue
        self._logger = logger or cascade_logger
        self._ingredients = IngredientRepository(db)
        self._menu_items = MenuItemRepository(db)
        self._settings = CompanySettingsRepository(db)

    def batch_changed(self, ingredient_id: int) -> str:
        """A stock batch of the ingredient was received, consumed or closed."""
        job_id = self._queue.enqueue(
            JobNames.INVENTORY_BATCH_CHANGE, ingredient_payload(ingredient_id)
        )
        self._logger.debug("Batch change dispatched", ingredient_id=ingredient_id, job_id=job_id)
        return job_id

    def ingredient_cost_changed(self, ingredient_id: int) -> str:
        """The ingredient's persisted unit cost changed."""
        job_id = self._queue.enqueue(
            JobNames.INGREDIENT_COST_UPDATE, ingredient_payload(ingredient_id)
        )
        self._logger.debug("Ingredient cost change dispatched", ingredient_id=ingredient_id, job_id=job_id)
        return job_id

    def fan_out_ingredient(self, ingredient_id: int) -> list[str]:
        """
        Enqueue one recipe recompute per distinct recipe using the ingredient.

        Returns:
            Job ids, empty when no recipe uses the ingredient
        """
        recipe_ids = list(self._ingredients.find_recipe_ids_using(ingredient_id))
        if not recipe_ids:
            self._logger.info("Ingredient not used by any recipe", ingredient_id=ingredient_id)
            return []

        job_ids = self._queue.enqueue_many(
            JobNames.RECIPE_COST_UPDATE,
            [recipe_payload(recipe_id) for recipe_id in recipe_ids],
        )
        self._logger.info(
            "Recipe recomputes dispatched",
            ingredient_id=ingredient_id,
            recipe_count=len(recipe_ids),
        )
        return job_ids

    def recipe_cost_changed(self, recipe_id: int) -> list[str]:
        """
        Enqueue one menu cost recompute per active menu item linked to the recipe.

        Returns:
            Job ids, empty when no active menu item uses the recipe
        """
        menu_item_ids = list(self._menu_items.find_active_ids_for_recipe(recipe_id))
        if not menu_item_ids:
            self._logger.debug("Recipe not linked to any active menu item", recipe_id=recipe_id)
            return []

        job_ids = self._queue.enqueue_many(
            JobNames.MENU_COST_UPDATE,
            [menu_item_payload(menu_item_id) for menu_item_id in menu_item_ids],
        )
        self._logger.info(
            "Menu cost recomputes dispatched",
            recipe_id=recipe_id,
            menu_item_count=len(menu_item_ids),
        )
        return job_ids

    def menu_item_linked(self, menu_item_id: int) -> str:
        """A recipe was linked to (or unlinked from) the menu item."""
        return self._queue.enqueue(JobNames.MENU_COST_UPDATE, menu_item_payload(menu_item_id))

    def menu_item_approved(self, menu_item_id: int, organization_id: int) -> bool:
        """
        Replicate an approved menu item into all branches, if the organization
        has auto-propagation turned on.

        Returns:
            True when a MENU_CASCADE job was enqueued
        """
        if not self._settings.get_auto_propagate(organization_id):
            self._logger.info(
                "Auto-propagation disabled, menu item not replicated",
                menu_item_id=menu_item_id,
                organization_id=organization_id,
            )
            return False

        self._queue.enqueue(
            JobNames.MENU_CASCADE, menu_cascade_payload(menu_item_id, organization_id)
        )
        return True
