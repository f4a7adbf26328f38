"""
Tests for recipe costing: line snapshots, totals, cost per portion and versioning.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from shared.utils.exceptions import NotFoundError
from costing.models import Ingredient, Recipe
from costing.services.costing import RecipeCostCalculator, compute_line_costs, summarize_costs
from costing.services.domain import IngredientService, RecipeService


def _ingredient(id_, fifo=None, average=None) -> Ingredient:
    return Ingredient(
        id=id_,
        name=f"ingredient-{id_}",
        fifo_unit_cost=Decimal(fifo) if fifo is not None else None,
        average_unit_cost=Decimal(average) if average is not None else None,
    )


class TestComputeLineCosts:
    """Effective unit cost is FIFO, then average, then zero."""

    def test_fifo_preferred(self):
        [line] = compute_line_costs([(_ingredient(1, fifo="2.00", average="3.00"), Decimal("5"))])
        assert line.unit_cost_at_use == Decimal("2.00")
        assert line.total_cost == Decimal("10")

    def test_average_when_no_fifo(self):
        [line] = compute_line_costs([(_ingredient(1, average="3.00"), Decimal("2"))])
        assert line.unit_cost_at_use == Decimal("3.00")
        assert line.total_cost == Decimal("6")

    def test_zero_when_no_cost(self):
        [line] = compute_line_costs([(_ingredient(1), Decimal("4"))])
        assert line.unit_cost_at_use == Decimal("0")
        assert line.total_cost == Decimal("0")

    def test_total_is_sum_of_rounded_lines(self):
        lines = compute_line_costs([
            (_ingredient(1, fifo="0.3333335"), Decimal("1")),
            (_ingredient(2, fifo="0.3333335"), Decimal("1")),
        ])
        total, per_portion = summarize_costs(lines, Decimal("3"))

        # Each unit cost rounds half-even to 0.333334
        assert [line.total_cost for line in lines] == [Decimal("0.333334")] * 2
        assert total == Decimal("0.666668")
        assert per_portion == Decimal("0.222223")


class TestRecipeCostCalculator:
    """Recompute against the database."""

    @pytest.fixture
    def dough(self, db_session, queue, seed_organization):
        ingredients = IngredientService(db_session, queue)
        flour = ingredients.create_ingredient(seed_organization.id, "Flour", unit_cost=Decimal("2.00"))
        water = ingredients.create_ingredient(seed_organization.id, "Water", unit_cost=Decimal("0.01"))
        recipe = RecipeService(db_session, queue).create_recipe(
            seed_organization.id,
            "Dough",
            Decimal("10"),
            [(flour.id, Decimal("5")), (water.id, Decimal("3"))],
        )
        return recipe, flour, water

    def test_recalculate_bumps_version_and_dispatches(self, db_session, dough):
        recipe, _, _ = dough
        dispatcher = MagicMock()

        result = RecipeCostCalculator(db_session, dispatcher).recalculate(recipe.id)

        assert result.total_cost == Decimal("10.03")
        assert result.cost_per_portion == Decimal("1.003")
        assert result.version == 2
        assert result.line_count == 2
        dispatcher.recipe_cost_changed.assert_called_once_with(recipe.id)

    def test_recalculate_picks_up_new_prices(self, db_session, queue, seed_organization, dough):
        recipe, flour, _ = dough
        IngredientService(db_session, queue).update_unit_cost(
            flour.id, seed_organization.id, Decimal("3.00")
        )

        result = RecipeCostCalculator(db_session, MagicMock()).recalculate(recipe.id)

        assert result.total_cost == Decimal("15.03")
        stored = db_session.get(Recipe, recipe.id)
        snapshots = {line.ingredient_id: line.unit_cost_at_use for line in stored.ingredients}
        assert snapshots[flour.id] == Decimal("3.00")
        assert sum(line.total_cost for line in stored.ingredients) == stored.total_cost

    def test_missing_recipe(self, db_session, seed_organization):
        dispatcher = MagicMock()
        with pytest.raises(NotFoundError):
            RecipeCostCalculator(db_session, dispatcher).recalculate(9999)
        dispatcher.recipe_cost_changed.assert_not_called()
