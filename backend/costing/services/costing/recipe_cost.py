"""
Recipe Cost Calculator.

For each line: effective unit cost (FIFO, then average, then zero) times
the quantity used. The recipe total is the sum of the rounded line totals,
so it always equals the sum of what is stored on the lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from shared.config.logging import StructuredLogger, cascade_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.exceptions import NotFoundError
from shared.utils.money import ZERO, effective_unit_cost, quantize
from costing.models import Ingredient, Recipe
from costing.repositories import RecipeRepository

from .cascade import CascadeDispatcher


@dataclass(frozen=True)
class LineCost:
    ingredient_id: int
    quantity_used: Decimal
    unit_cost_at_use: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class RecipeCostResult:
    recipe_id: int
    total_cost: Decimal
    cost_per_portion: Decimal
    version: int
    line_count: int


def compute_line_costs(lines: Iterable[tuple[Ingredient, Decimal]]) -> list[LineCost]:
    """
    Cost snapshot of each (ingredient, quantity used) pair.

    Example:
        Flour at 2.00 per unit, 5 units used -> total_cost 10.000000
    """
    result = []
    for ingredient, quantity in lines:
        unit_cost = quantize(
            effective_unit_cost(ingredient.fifo_unit_cost, ingredient.average_unit_cost)
        )
        result.append(
            LineCost(
                ingredient_id=ingredient.id,
                quantity_used=quantity,
                unit_cost_at_use=unit_cost,
                total_cost=quantize(unit_cost * quantity),
            )
        )
    return result


def summarize_costs(line_costs: Iterable[LineCost], yield_quantity: Decimal) -> tuple[Decimal, Decimal]:
    """Return (total cost, cost per portion) for already computed lines."""
    total = sum((line.total_cost for line in line_costs), ZERO)
    return quantize(total), quantize(total / yield_quantity)


class RecipeCostCalculator:
    """
    Recomputes a recipe's line snapshots, totals and version in one transaction,
    then dispatches menu cost updates for the menu items using it.
    """

    def __init__(
        self,
        db: Session,
        dispatcher: CascadeDispatcher,
        logger: StructuredLogger | None = None,
    ):
        self._db = db
        self._dispatcher = dispatcher
        self._logger = logger or cascade_logger
        self._recipes = RecipeRepository(db)

    def recalculate(self, recipe_id: int) -> RecipeCostResult:
        """
        Raises:
            NotFoundError: recipe missing, or a line references a missing ingredient
        """
        result = run_in_transaction(self._db, lambda: self._apply(recipe_id))
        self._dispatcher.recipe_cost_changed(recipe_id)
        return result

    def _apply(self, recipe_id: int) -> RecipeCostResult:
        recipe: Recipe = self._recipes.get_or_raise(recipe_id)

        pairs = []
        for line in recipe.ingredients:
            if line.ingredient is None:
                raise NotFoundError(
                    "Ingredient", line.ingredient_id, recipe_id=recipe_id
                )
            pairs.append((line.ingredient, line.quantity_used))

        line_costs = compute_line_costs(pairs)
        for line, cost in zip(recipe.ingredients, line_costs):
            line.unit_cost_at_use = cost.unit_cost_at_use
            line.total_cost = cost.total_cost

        recipe.total_cost, recipe.cost_per_portion = summarize_costs(
            line_costs, recipe.yield_quantity
        )
        recipe.version = (recipe.version or 0) + 1
        self._db.flush()

        self._logger.info(
            "Recipe cost recalculated",
            recipe_id=recipe_id,
            total_cost=recipe.total_cost,
            cost_per_portion=recipe.cost_per_portion,
            version=recipe.version,
            lines=len(line_costs),
        )
        return RecipeCostResult(
            recipe_id=recipe.id,
            total_cost=recipe.total_cost,
            cost_per_portion=recipe.cost_per_portion,
            version=recipe.version,
            line_count=len(line_costs),
        )
