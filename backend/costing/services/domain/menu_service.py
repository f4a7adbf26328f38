"""
Menu Domain Service.

Menu item creation, recipe linking, approval and branch propagation.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.validators import validate_name, validate_non_negative
from costing.jobs.types import JobQueue
from costing.models import MenuItem
from costing.repositories import MenuItemRepository, OrganizationRepository, RecipeRepository
from costing.services.costing import (
    BranchMenuPropagator,
    CascadeDispatcher,
    PropagationResult,
)

logger = get_logger(__name__)


class MenuService:
    """Domain service for menu item operations."""

    def __init__(self, db: Session, queue: JobQueue):
        self._db = db
        self._dispatcher = CascadeDispatcher(db, queue)
        self._organizations = OrganizationRepository(db)
        self._menu_items = MenuItemRepository(db)
        self._recipes = RecipeRepository(db)

    def get_menu_item(self, menu_item_id: int, organization_id: int) -> MenuItem:
        return self._menu_items.get_or_raise(menu_item_id, organization_id)

    def create_menu_item(
        self,
        organization_id: int,
        name: str,
        base_price: Decimal | str | int,
        portion_multiplier: Decimal | str | int = Decimal("1"),
        recipe_id: int | None = None,
    ) -> MenuItem:
        """
        Create a menu item. When a recipe is given, its cost is computed by the cascade.

        Raises:
            NotFoundError: organization or recipe missing
            ValidationError: invalid name, negative price or multiplier
        """
        name = validate_name(name, "Menu item")
        base_price = validate_non_negative(base_price, "base_price")
        portion_multiplier = validate_non_negative(portion_multiplier, "portion_multiplier")

        def _create() -> MenuItem:
            self._organizations.get_or_raise(organization_id)
            if recipe_id is not None:
                self._recipes.get_or_raise(recipe_id, organization_id)
            return self._menu_items.save(
                MenuItem(
                    organization_id=organization_id,
                    recipe_id=recipe_id,
                    name=name,
                    base_price=base_price,
                    portion_multiplier=portion_multiplier,
                )
            )

        item = run_in_transaction(self._db, _create)
        if recipe_id is not None:
            self._dispatcher.menu_item_linked(item.id)

        logger.info("Menu item created", menu_item_id=item.id, organization_id=organization_id)
        return item

    def link_recipe(
        self,
        menu_item_id: int,
        organization_id: int,
        recipe_id: int | None,
    ) -> MenuItem:
        """
        Link a recipe to the menu item (None unlinks) and queue its cost recompute.

        Unlinking clears the computed cost and margin: an item without a
        recipe has no cost.

        Raises:
            NotFoundError: menu item or recipe not found in the organization
        """

        def _link() -> MenuItem:
            item = self._menu_items.get_or_raise(menu_item_id, organization_id)
            if recipe_id is not None:
                self._recipes.get_or_raise(recipe_id, organization_id)
            else:
                item.computed_cost = None
                item.margin = None
            item.recipe_id = recipe_id
            self._db.flush()
            return item

        item = run_in_transaction(self._db, _link)
        if recipe_id is not None:
            self._dispatcher.menu_item_linked(menu_item_id)

        logger.info(
            "Menu item recipe linked" if recipe_id is not None else "Menu item recipe unlinked",
            menu_item_id=menu_item_id,
            recipe_id=recipe_id,
        )
        return item

    def approve(self, menu_item_id: int, organization_id: int) -> bool:
        """
        Approval hook: replicate the item into all branches when the
        organization has auto-propagation on.

        Returns:
            True when propagation was queued
        """
        self._menu_items.get_or_raise(menu_item_id, organization_id, include_inactive=False)
        return self._dispatcher.menu_item_approved(menu_item_id, organization_id)

    def propagate_now(self, menu_item_id: int, organization_id: int) -> PropagationResult:
        """Run branch propagation inline."""
        return BranchMenuPropagator(self._db).propagate(menu_item_id, organization_id)
