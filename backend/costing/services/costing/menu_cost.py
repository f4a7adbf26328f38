"""
Menu Cost Calculator.

computed_cost = recipe.total_cost / recipe.yield_quantity * portion_multiplier
margin        = (base_price - computed_cost) / base_price, None when base_price is 0

Items without a linked recipe are skipped; that is not an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Final

from sqlalchemy.orm import Session

from shared.config.logging import StructuredLogger, cascade_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.money import margin_for, quantize
from costing.repositories import (
    CompanySettingsRepository,
    MenuItemRepository,
    RecipeRepository,
)

from .margin_monitor import MarginThresholdMonitor

STATUS_UPDATED: Final[str] = "updated"
STATUS_SKIPPED: Final[str] = "skipped"


@dataclass(frozen=True)
class MenuCostResult:
    menu_item_id: int
    status: str
    computed_cost: Decimal | None = None
    margin: Decimal | None = None
    alert_raised: bool = False

    @property
    def skipped(self) -> bool:
        return self.status == STATUS_SKIPPED


class MenuCostCalculator:
    """
    Recomputes one menu item's cost and margin, and checks the margin
    against the organization's target in the same transaction.
    """

    def __init__(
        self,
        db: Session,
        monitor: MarginThresholdMonitor,
        logger: StructuredLogger | None = None,
    ):
        self._db = db
        self._monitor = monitor
        self._logger = logger or cascade_logger
        self._menu_items = MenuItemRepository(db)
        self._recipes = RecipeRepository(db)
        self._settings = CompanySettingsRepository(db)

    def recalculate(self, menu_item_id: int) -> MenuCostResult:
        """
        Raises:
            NotFoundError: menu item missing, or its linked recipe missing
        """
        return run_in_transaction(self._db, lambda: self._apply(menu_item_id))

    def _apply(self, menu_item_id: int) -> MenuCostResult:
        item = self._menu_items.get_or_raise(menu_item_id)
        if item.recipe_id is None:
            self._logger.debug("Menu item has no recipe, skipped", menu_item_id=menu_item_id)
            return MenuCostResult(menu_item_id=menu_item_id, status=STATUS_SKIPPED)

        recipe = self._recipes.get_or_raise(item.recipe_id)

        computed_cost = quantize(
            recipe.total_cost / recipe.yield_quantity * item.portion_multiplier
        )
        margin = margin_for(item.base_price, computed_cost)
        item.computed_cost = computed_cost
        item.margin = margin

        threshold = self._settings.get_target_margin_threshold(item.organization_id)
        alert = self._monitor.check(item.id, item.organization_id, margin, threshold)
        self._db.flush()

        self._logger.info(
            "Menu item cost recalculated",
            menu_item_id=menu_item_id,
            recipe_id=recipe.id,
            recipe_version=recipe.version,
            computed_cost=computed_cost,
            margin=margin,
        )
        return MenuCostResult(
            menu_item_id=menu_item_id,
            status=STATUS_UPDATED,
            computed_cost=computed_cost,
            margin=margin,
            alert_raised=alert is not None,
        )
