"""
Tests for the domain services: validation, transactions and dispatch after commit.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import update

from shared.config.constants import CostHistoryReason, JobNames
from shared.utils.exceptions import ConflictError, NotFoundError, ValidationError
from costing.models import BranchMenu, Ingredient, IngredientBatch, MenuItem, Recipe, RecipeIngredient
from costing.repositories import IngredientRepository
from costing.services.domain import (
    CompanySettingsService,
    IngredientService,
    InventoryService,
    MenuService,
    OrganizationService,
    RecipeService,
    validate_threshold,
)


class TestIngredientService:

    def test_create_without_cost(self, db_session, queue, seed_organization):
        ingredient = IngredientService(db_session, queue).create_ingredient(seed_organization.id, "  Salt  ")

        assert ingredient.name == "Salt"
        assert ingredient.average_unit_cost is None
        assert ingredient.effective_unit_cost is None
        assert IngredientRepository(db_session).find_cost_history(ingredient.id) == []
        assert queue.jobs == []

    def test_create_in_unknown_organization(self, db_session, queue):
        with pytest.raises(NotFoundError):
            IngredientService(db_session, queue).create_ingredient(9999, "Salt")

    def test_update_cost_writes_history_then_dispatches(self, db_session, queue, seed_organization):
        service = IngredientService(db_session, queue)
        salt = service.create_ingredient(seed_organization.id, "Salt", unit_cost=Decimal("1"))

        service.update_unit_cost(salt.id, seed_organization.id, "1.25")

        reasons = [h.reason for h in IngredientRepository(db_session).find_cost_history(salt.id)]
        assert reasons == [CostHistoryReason.INITIAL_SETUP, CostHistoryReason.MANUAL_PRICE_UPDATE]
        assert queue.names() == [JobNames.INGREDIENT_COST_UPDATE]

    def test_unchanged_price_is_a_no_op(self, db_session, queue, seed_organization):
        service = IngredientService(db_session, queue)
        flour = service.create_ingredient(seed_organization.id, "Flour", unit_cost=Decimal("2.00"))

        service.update_unit_cost(flour.id, seed_organization.id, "2.0")

        history = IngredientRepository(db_session).find_cost_history(flour.id)
        assert [h.reason for h in history] == [CostHistoryReason.INITIAL_SETUP]
        assert queue.jobs == []

    def test_price_differing_in_one_field_is_applied(self, db_session, queue, seed_organization):
        """After a revaluation the two costs can differ; the edit realigns them."""
        service = IngredientService(db_session, queue)
        flour = service.create_ingredient(seed_organization.id, "Flour", unit_cost=Decimal("2.00"))
        db_session.get(Ingredient, flour.id).average_unit_cost = Decimal("3.00")
        db_session.commit()

        service.update_unit_cost(flour.id, seed_organization.id, "2.00")

        assert db_session.get(Ingredient, flour.id).average_unit_cost == Decimal("2.00")
        assert queue.names() == [JobNames.INGREDIENT_COST_UPDATE]

    def test_update_cost_rejects_floats(self, db_session, queue, seed_organization):
        salt = IngredientService(db_session, queue).create_ingredient(seed_organization.id, "Salt")
        with pytest.raises(ValidationError):
            IngredientService(db_session, queue).update_unit_cost(salt.id, seed_organization.id, 1.5)

    def test_failed_dispatch_keeps_committed_price(self, db_session, seed_organization):
        """Dispatch runs after commit: a queue outage fails the request, not the edit."""
        broken_queue = MagicMock()
        broken_queue.enqueue.side_effect = ConnectionError("redis down")
        service = IngredientService(db_session, broken_queue)
        salt = service.create_ingredient(seed_organization.id, "Salt", unit_cost=Decimal("1"))

        with pytest.raises(ConnectionError):
            service.update_unit_cost(salt.id, seed_organization.id, Decimal("2"))

        db_session.expire_all()
        assert db_session.get(Ingredient, salt.id).fifo_unit_cost == Decimal("2")


class TestInventoryService:

    @pytest.fixture
    def flour(self, db_session, queue, seed_organization):
        return IngredientService(db_session, queue).create_ingredient(seed_organization.id, "Flour")

    def test_receive_stock(self, db_session, queue, seed_organization, flour):
        batch = InventoryService(db_session, queue).receive_stock(
            flour.id, seed_organization.id, "10", "2.00"
        )

        assert batch.remaining_quantity == Decimal("10")
        assert batch.is_closed is False
        assert db_session.get(Ingredient, flour.id).total_stock == Decimal("10")
        assert queue.jobs[0].data == {"ingredientId": flour.id}

    def test_receive_zero_quantity(self, db_session, queue, seed_organization, flour):
        with pytest.raises(ValidationError):
            InventoryService(db_session, queue).receive_stock(flour.id, seed_organization.id, "0", "2")

    def test_consume_oldest_first_and_close(self, db_session, queue, seed_organization, flour):
        inventory = InventoryService(db_session, queue)
        first = inventory.receive_stock(flour.id, seed_organization.id, "4", "2.00")
        second = inventory.receive_stock(flour.id, seed_organization.id, "6", "3.00")

        touched = inventory.consume_stock(flour.id, seed_organization.id, "5")

        assert [b.id for b in touched] == [first.id, second.id]
        assert db_session.get(IngredientBatch, first.id).is_closed is True
        assert db_session.get(IngredientBatch, second.id).remaining_quantity == Decimal("5")
        assert db_session.get(Ingredient, flour.id).total_stock == Decimal("5")

    def test_consume_more_than_available_changes_nothing(self, db_session, queue, seed_organization, flour):
        inventory = InventoryService(db_session, queue)
        batch = inventory.receive_stock(flour.id, seed_organization.id, "2", "2.00")
        queue.clear()

        with pytest.raises(ValidationError):
            inventory.consume_stock(flour.id, seed_organization.id, "3")

        db_session.expire_all()
        assert db_session.get(IngredientBatch, batch.id).remaining_quantity == Decimal("2")
        assert queue.jobs == []

    def test_adjust_stock_moves_total_only(self, db_session, queue, seed_organization, flour):
        inventory = InventoryService(db_session, queue)
        batch = inventory.receive_stock(flour.id, seed_organization.id, "10", "2.00")
        queue.clear()

        ingredient = inventory.adjust_stock(flour.id, seed_organization.id, "-2.5", "Stocktake count")

        assert ingredient.total_stock == Decimal("7.5")
        assert db_session.get(IngredientBatch, batch.id).remaining_quantity == Decimal("10")
        assert queue.jobs == []

    def test_adjust_stock_below_zero(self, db_session, queue, seed_organization, flour):
        inventory = InventoryService(db_session, queue)
        inventory.receive_stock(flour.id, seed_organization.id, "2", "2.00")

        with pytest.raises(ValidationError):
            inventory.adjust_stock(flour.id, seed_organization.id, "-3", "Spoiled")

        db_session.expire_all()
        assert db_session.get(Ingredient, flour.id).total_stock == Decimal("2")

    @pytest.mark.parametrize("quantity, reason", [("0", "Recount"), ("abc", "Recount"), ("1", "   ")])
    def test_adjust_stock_validation(self, db_session, queue, seed_organization, flour, quantity, reason):
        with pytest.raises(ValidationError):
            InventoryService(db_session, queue).adjust_stock(flour.id, seed_organization.id, quantity, reason)

    def test_low_stock_alerts(self, db_session, queue, seed_organization):
        ingredients = IngredientService(db_session, queue)
        inventory = InventoryService(db_session, queue)
        salt = ingredients.create_ingredient(seed_organization.id, "Salt", reorder_threshold=Decimal("5"))
        sugar = ingredients.create_ingredient(seed_organization.id, "Sugar", reorder_threshold=Decimal("5"))
        yeast = ingredients.create_ingredient(seed_organization.id, "Yeast", reorder_threshold=Decimal("1"))
        ingredients.create_ingredient(seed_organization.id, "Water")
        inventory.receive_stock(salt.id, seed_organization.id, "5", "0.10")
        inventory.receive_stock(sugar.id, seed_organization.id, "8", "0.20")
        inventory.receive_stock(yeast.id, seed_organization.id, "3", "1.00")
        inventory.consume_stock(yeast.id, seed_organization.id, "2.5")

        alerts = inventory.low_stock_alerts(seed_organization.id)

        assert [i.name for i in alerts] == ["Salt", "Yeast"]

    def test_low_stock_alerts_skip_inactive_and_other_organizations(
        self, db_session, queue, seed_organization, other_organization
    ):
        ingredients = IngredientService(db_session, queue)
        ingredients.create_ingredient(other_organization.id, "Salt", reorder_threshold=Decimal("5"))
        retired = ingredients.create_ingredient(seed_organization.id, "Saffron", reorder_threshold=Decimal("1"))
        db_session.get(Ingredient, retired.id).is_active = False
        db_session.commit()

        assert InventoryService(db_session, queue).low_stock_alerts(seed_organization.id) == []

    def test_low_stock_alerts_unknown_organization(self, db_session, queue):
        with pytest.raises(NotFoundError):
            InventoryService(db_session, queue).low_stock_alerts(9999)


class TestRecipeService:

    @pytest.fixture
    def ingredients(self, db_session, queue, seed_organization):
        service = IngredientService(db_session, queue)
        return (
            service.create_ingredient(seed_organization.id, "Flour", unit_cost=Decimal("2")),
            service.create_ingredient(seed_organization.id, "Water", unit_cost=Decimal("0")),
        )

    def test_duplicate_ingredient_lines(self, db_session, queue, seed_organization, ingredients):
        flour, _ = ingredients
        with pytest.raises(ValidationError):
            RecipeService(db_session, queue).create_recipe(
                seed_organization.id, "Dough", "10", [(flour.id, "1"), (flour.id, "2")]
            )

    def test_ingredient_of_other_organization(self, db_session, queue, other_organization, ingredients):
        flour, _ = ingredients
        with pytest.raises(NotFoundError):
            RecipeService(db_session, queue).create_recipe(
                other_organization.id, "Dough", "10", [(flour.id, "1")]
            )

    def test_duplicate_recipe_name(self, db_session, queue, seed_organization, ingredients):
        flour, _ = ingredients
        service = RecipeService(db_session, queue)
        service.create_recipe(seed_organization.id, "Dough", "10", [(flour.id, "1")])
        with pytest.raises(ConflictError):
            service.create_recipe(seed_organization.id, "Dough", "5", [(flour.id, "1")])

    def test_replace_lines(self, db_session, queue, seed_organization, ingredients):
        flour, water = ingredients
        service = RecipeService(db_session, queue)
        recipe = service.create_recipe(seed_organization.id, "Dough", "10", [(flour.id, "5")])

        service.update_recipe(
            recipe.id, seed_organization.id, lines=[(flour.id, "2"), (water.id, "3")]
        )

        db_session.expire_all()
        stored = db_session.get(Recipe, recipe.id)
        assert sorted(line.ingredient_id for line in stored.ingredients) == [flour.id, water.id]
        assert stored.total_cost == Decimal("4")
        assert stored.version == 2

    def test_invalid_update_leaves_recipe_untouched(self, db_session, queue, seed_organization, ingredients):
        flour, _ = ingredients
        service = RecipeService(db_session, queue)
        recipe = service.create_recipe(seed_organization.id, "Dough", "10", [(flour.id, "5")])

        with pytest.raises(NotFoundError):
            service.update_recipe(recipe.id, seed_organization.id, lines=[(9999, "1")])

        db_session.expire_all()
        stored = db_session.get(Recipe, recipe.id)
        assert stored.version == 1
        assert len(stored.ingredients) == 1

    def test_update_with_dangling_line_raises_not_found(self, db_session, queue, seed_organization, ingredients):
        flour, _ = ingredients
        service = RecipeService(db_session, queue)
        recipe = service.create_recipe(seed_organization.id, "Dough", "10", [(flour.id, "5")])
        db_session.execute(
            update(RecipeIngredient).where(RecipeIngredient.recipe_id == recipe.id).values(ingredient_id=9999)
        )
        db_session.commit()
        queue.clear()

        with pytest.raises(NotFoundError):
            service.update_recipe(recipe.id, seed_organization.id, yield_quantity="5")

        db_session.expire_all()
        stored = db_session.get(Recipe, recipe.id)
        assert stored.version == 1
        assert stored.yield_quantity == Decimal("10")
        assert queue.jobs == []


class TestMenuService:

    def test_link_recipe_dispatches_cost_update(self, db_session, queue, seed_organization):
        flour = IngredientService(db_session, queue).create_ingredient(
            seed_organization.id, "Flour", unit_cost=Decimal("2")
        )
        dough = RecipeService(db_session, queue).create_recipe(
            seed_organization.id, "Dough", "10", [(flour.id, "5")]
        )
        item = MenuService(db_session, queue).create_menu_item(seed_organization.id, "Pizza", "5")
        queue.clear()

        MenuService(db_session, queue).link_recipe(item.id, seed_organization.id, dough.id)

        assert queue.names() == [JobNames.MENU_COST_UPDATE]
        assert db_session.get(MenuItem, item.id).recipe_id == dough.id

    def test_link_recipe_of_other_organization(self, db_session, queue, seed_organization, other_organization):
        flour = IngredientService(db_session, queue).create_ingredient(
            other_organization.id, "Flour", unit_cost=Decimal("2")
        )
        foreign = RecipeService(db_session, queue).create_recipe(
            other_organization.id, "Dough", "10", [(flour.id, "5")]
        )
        item = MenuService(db_session, queue).create_menu_item(seed_organization.id, "Pizza", "5")

        with pytest.raises(NotFoundError):
            MenuService(db_session, queue).link_recipe(item.id, seed_organization.id, foreign.id)


class TestCompanySettingsService:

    def test_threshold_bounds(self):
        assert validate_threshold(None) is None
        assert validate_threshold("0") == Decimal("0")
        with pytest.raises(ValidationError):
            validate_threshold("1")
        with pytest.raises(ValidationError):
            validate_threshold("-0.1")

    def test_defaults_created_lazily(self, db_session, other_organization):
        row = CompanySettingsService(db_session).get_settings(other_organization.id)

        assert row.target_margin_threshold == Decimal("0.30")
        assert row.auto_propagate_approved_menus is True


class TestOrganizationService:

    def test_create_organization_with_settings(self, db_session):
        organization = OrganizationService(db_session).create_organization("La Trattoria", "la-trattoria")

        assert organization.slug == "la-trattoria"
        assert organization.settings is not None

    def test_invalid_slug(self, db_session):
        with pytest.raises(ValidationError):
            OrganizationService(db_session).create_organization("X", "Not A Slug!")

    def test_duplicate_slug(self, db_session, seed_organization):
        with pytest.raises(ConflictError):
            OrganizationService(db_session).create_organization("Again", seed_organization.slug)

    def test_create_branch(self, db_session, seed_organization):
        branch = OrganizationService(db_session).create_branch(seed_organization.id, "Centro", "Calle 1")

        assert branch.organization_id == seed_organization.id
        assert branch.is_active is True

    def test_new_branch_inherits_active_menu_items(self, db_session, queue, seed_organization):
        menu = MenuService(db_session, queue)
        pizza = menu.create_menu_item(seed_organization.id, "Pizza", "5")
        pasta = menu.create_menu_item(seed_organization.id, "Pasta", "4")
        retired = menu.create_menu_item(seed_organization.id, "Calzone", "6")
        db_session.get(MenuItem, retired.id).is_active = False
        db_session.commit()

        branch = OrganizationService(db_session).create_branch(seed_organization.id, "Sur")

        rows = db_session.query(BranchMenu).filter(BranchMenu.branch_id == branch.id).all()
        assert sorted(row.menu_item_id for row in rows) == [pizza.id, pasta.id]
        assert all(row.is_available for row in rows)

    def test_new_branch_without_auto_propagation(self, db_session, queue, seed_organization):
        MenuService(db_session, queue).create_menu_item(seed_organization.id, "Pizza", "5")
        seed_organization.settings.auto_propagate_approved_menus = False
        db_session.commit()

        branch = OrganizationService(db_session).create_branch(seed_organization.id, "Sur")

        assert db_session.query(BranchMenu).filter(BranchMenu.branch_id == branch.id).count() == 0

    def test_new_branch_ignores_other_organizations_menu(self, db_session, queue, seed_organization, other_organization):
        MenuService(db_session, queue).create_menu_item(other_organization.id, "Pizza", "5")

        branch = OrganizationService(db_session).create_branch(seed_organization.id, "Sur")

        assert db_session.query(BranchMenu).filter(BranchMenu.branch_id == branch.id).count() == 0
