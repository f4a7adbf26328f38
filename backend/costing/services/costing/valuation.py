"""
Inventory Valuation Calculator.

Derives an ingredient's weighted-average and FIFO unit costs from its open
stock batches.

The cost history follows the effective unit cost (FIFO, then average), the
value recipe lines are priced with. A change to the average alone still
starts the cascade but adds no history row.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from shared.config.constants import CostHistoryReason
from shared.config.logging import StructuredLogger, cascade_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.money import (
    ZERO,
    decimals_equal,
    effective_unit_cost,
    quantize,
    quantize_optional,
)
from costing.models import IngredientBatch
from costing.repositories import IngredientBatchRepository, IngredientRepository

from .cascade import CascadeDispatcher


@dataclass(frozen=True)
class Valuation:
    """Unit costs derived from a set of open batches."""

    average_unit_cost: Decimal | None
    fifo_unit_cost: Decimal | None


def value_batches(batches: Sequence[IngredientBatch]) -> Valuation:
    """
    Weighted average and FIFO cost of open batches given in FIFO order.

    The average is None when there are no batches or nothing remains in them;
    FIFO is the cost of the first batch, None when there are none.
    """
    if not batches:
        return Valuation(average_unit_cost=None, fifo_unit_cost=None)

    total_quantity = sum((b.remaining_quantity for b in batches), ZERO)
    total_value = sum((b.unit_cost * b.remaining_quantity for b in batches), ZERO)
    average = total_value / total_quantity if total_quantity > ZERO else None

    return Valuation(
        average_unit_cost=quantize_optional(average),
        fifo_unit_cost=quantize(batches[0].unit_cost),
    )


class InventoryValuationCalculator:
    """
    Revalues one ingredient from its currently open batches.

    Usage:
        calculator = InventoryValuationCalculator(db, dispatcher)
        changed = calculator.recalculate(ingredient_id)
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
        self._ingredients = IngredientRepository(db)
        self._batches = IngredientBatchRepository(db)

    def recalculate(self, ingredient_id: int) -> bool:
        """
        Persist the ingredient's average and FIFO costs.

        Returns:
            True when either cost changed. In that case an ingredient cost
            update is dispatched after the commit.

        Raises:
            NotFoundError: ingredient does not exist
        """
        cost_changed = run_in_transaction(self._db, lambda: self._apply(ingredient_id))

        if cost_changed:
            self._dispatcher.ingredient_cost_changed(ingredient_id)
        return cost_changed

    def _apply(self, ingredient_id: int) -> bool:
        ingredient = self._ingredients.get_or_raise(ingredient_id)
        valuation = value_batches(self._batches.find_open(ingredient_id))

        previous_effective = ingredient.effective_unit_cost
        cost_changed = not (
            decimals_equal(ingredient.average_unit_cost, valuation.average_unit_cost)
            and decimals_equal(ingredient.fifo_unit_cost, valuation.fifo_unit_cost)
        )

        ingredient.average_unit_cost = valuation.average_unit_cost
        ingredient.fifo_unit_cost = valuation.fifo_unit_cost

        new_effective = ingredient.effective_unit_cost
        if new_effective is not None and not decimals_equal(previous_effective, new_effective):
            self._ingredients.add_cost_history(
                ingredient.id, new_effective, CostHistoryReason.INVENTORY_REVALUATION
            )

        self._db.flush()
        self._logger.info(
            "Ingredient revalued",
            ingredient_id=ingredient_id,
            average_unit_cost=valuation.average_unit_cost,
            fifo_unit_cost=valuation.fifo_unit_cost,
            effective_unit_cost=effective_unit_cost(
                valuation.fifo_unit_cost, valuation.average_unit_cost
            ),
            cost_changed=cost_changed,
        )
        return cost_changed
