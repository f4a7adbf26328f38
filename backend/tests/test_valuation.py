"""
Tests for inventory valuation: weighted average and FIFO unit costs.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from shared.config.constants import CostHistoryReason
from shared.utils.exceptions import NotFoundError
from costing.models import Ingredient, IngredientBatch
from costing.repositories import IngredientRepository
from costing.services.costing import InventoryValuationCalculator, value_batches
from costing.services.domain import IngredientService, InventoryService


def _batch(unit_cost: str, remaining: str) -> IngredientBatch:
    return IngredientBatch(
        unit_cost=Decimal(unit_cost),
        initial_quantity=Decimal(remaining),
        remaining_quantity=Decimal(remaining),
    )


class TestValueBatches:
    """Pure valuation of open batches."""

    def test_no_batches(self):
        valuation = value_batches([])
        assert valuation.average_unit_cost is None
        assert valuation.fifo_unit_cost is None

    def test_weighted_average_and_fifo(self):
        valuation = value_batches([_batch("2.00", "10"), _batch("4.00", "30")])
        # (2*10 + 4*30) / 40
        assert valuation.average_unit_cost == Decimal("3.5")
        assert valuation.fifo_unit_cost == Decimal("2.00")

    def test_average_rounded_half_even(self):
        valuation = value_batches([_batch("1", "2"), _batch("2", "1")])
        # 4 / 3 = 1.333333...
        assert valuation.average_unit_cost == Decimal("1.333333")

    def test_empty_remaining_quantity_has_no_average(self):
        valuation = value_batches([_batch("2.00", "0")])
        assert valuation.average_unit_cost is None
        assert valuation.fifo_unit_cost == Decimal("2.00")


class TestInventoryValuationCalculator:
    """Revaluation against the database."""

    @pytest.fixture
    def flour(self, db_session, queue, seed_organization):
        return IngredientService(db_session, queue).create_ingredient(
            seed_organization.id, "Flour", unit="kg"
        )

    def test_first_receipt_sets_costs_and_dispatches(self, db_session, queue, flour, seed_organization):
        InventoryService(db_session, queue).receive_stock(
            flour.id, seed_organization.id, Decimal("10"), Decimal("2.00")
        )
        dispatcher = MagicMock()

        changed = InventoryValuationCalculator(db_session, dispatcher).recalculate(flour.id)

        assert changed is True
        dispatcher.ingredient_cost_changed.assert_called_once_with(flour.id)
        ingredient = db_session.get(Ingredient, flour.id)
        assert ingredient.average_unit_cost == Decimal("2.00")
        assert ingredient.fifo_unit_cost == Decimal("2.00")

    def test_recalculating_twice_does_not_dispatch_again(self, db_session, queue, flour, seed_organization):
        InventoryService(db_session, queue).receive_stock(
            flour.id, seed_organization.id, Decimal("10"), Decimal("2.00")
        )
        dispatcher = MagicMock()
        calculator = InventoryValuationCalculator(db_session, dispatcher)

        assert calculator.recalculate(flour.id) is True
        assert calculator.recalculate(flour.id) is False
        dispatcher.ingredient_cost_changed.assert_called_once()

    def test_fifo_moves_when_oldest_batch_is_consumed(self, db_session, queue, flour, seed_organization):
        inventory = InventoryService(db_session, queue)
        inventory.receive_stock(flour.id, seed_organization.id, Decimal("5"), Decimal("2.00"))
        inventory.receive_stock(flour.id, seed_organization.id, Decimal("5"), Decimal("3.00"))
        calculator = InventoryValuationCalculator(db_session, MagicMock())
        calculator.recalculate(flour.id)

        inventory.consume_stock(flour.id, seed_organization.id, Decimal("5"))
        calculator.recalculate(flour.id)

        ingredient = db_session.get(Ingredient, flour.id)
        assert ingredient.fifo_unit_cost == Decimal("3.00")
        assert ingredient.average_unit_cost == Decimal("3.00")

    def test_no_open_batches_clears_costs(self, db_session, queue, seed_organization):
        salt = IngredientService(db_session, queue).create_ingredient(
            seed_organization.id, "Salt", unit_cost=Decimal("0.50")
        )
        dispatcher = MagicMock()

        changed = InventoryValuationCalculator(db_session, dispatcher).recalculate(salt.id)

        assert changed is True
        ingredient = db_session.get(Ingredient, salt.id)
        assert ingredient.average_unit_cost is None
        assert ingredient.fifo_unit_cost is None

    def test_cost_history_written_on_effective_change(self, db_session, queue, flour, seed_organization):
        InventoryService(db_session, queue).receive_stock(
            flour.id, seed_organization.id, Decimal("10"), Decimal("2.00")
        )
        InventoryValuationCalculator(db_session, MagicMock()).recalculate(flour.id)

        history = IngredientRepository(db_session).find_cost_history(flour.id)
        assert [h.reason for h in history] == [CostHistoryReason.INVENTORY_REVALUATION]
        assert history[0].unit_cost == Decimal("2.00")

    def test_average_only_change_cascades_without_history(self, db_session, queue, flour, seed_organization):
        """History follows the effective (FIFO first) cost that recipes use."""
        inventory = InventoryService(db_session, queue)
        inventory.receive_stock(flour.id, seed_organization.id, Decimal("10"), Decimal("2.00"))
        calculator = InventoryValuationCalculator(db_session, MagicMock())
        calculator.recalculate(flour.id)

        inventory.receive_stock(flour.id, seed_organization.id, Decimal("10"), Decimal("4.00"))
        dispatcher = MagicMock()
        changed = InventoryValuationCalculator(db_session, dispatcher).recalculate(flour.id)

        assert changed is True
        dispatcher.ingredient_cost_changed.assert_called_once_with(flour.id)
        ingredient = db_session.get(Ingredient, flour.id)
        assert ingredient.average_unit_cost == Decimal("3.00")
        assert ingredient.fifo_unit_cost == Decimal("2.00")
        history = IngredientRepository(db_session).find_cost_history(flour.id)
        assert [h.unit_cost for h in history] == [Decimal("2.00")]

    def test_missing_ingredient(self, db_session, seed_organization):
        dispatcher = MagicMock()
        with pytest.raises(NotFoundError):
            InventoryValuationCalculator(db_session, dispatcher).recalculate(9999)
        dispatcher.ingredient_cost_changed.assert_not_called()
