"""
Recipe Domain Service.

Recipe creation and edits, plus the synchronous "recalculate now" action.
This is where recipe invariants are enforced (at least one line, positive
yield and quantities, one line per ingredient); the cost cascade relies on
them and never re-validates.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from shared.config.constants import Limits
from shared.config.logging import get_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.exceptions import DuplicateEntityError, NotFoundError, ValidationError
from shared.utils.validators import validate_name, validate_positive
from costing.jobs.types import JobQueue
from costing.models import Ingredient, Recipe, RecipeIngredient
from costing.repositories import IngredientRepository, OrganizationRepository, RecipeRepository
from costing.services.costing import (
    CascadeDispatcher,
    RecipeCostCalculator,
    RecipeCostResult,
    compute_line_costs,
    summarize_costs,
)

logger = get_logger(__name__)

# (ingredient_id, quantity_used)
RecipeLine = tuple[int, Decimal]


class RecipeService:
    """
    Domain service for recipe operations.

    Usage:
        service = RecipeService(db, get_job_queue())
        recipe = service.create_recipe(org_id, "Dough", Decimal("10"), [(flour.id, Decimal("5"))])
    """

    def __init__(self, db: Session, queue: JobQueue):
        self._db = db
        self._dispatcher = CascadeDispatcher(db, queue)
        self._organizations = OrganizationRepository(db)
        self._ingredients = IngredientRepository(db)
        self._recipes = RecipeRepository(db)

    # =========================================================================
    # Read
    # =========================================================================

    def get_recipe(self, recipe_id: int, organization_id: int) -> Recipe:
        return self._recipes.get_or_raise(recipe_id, organization_id)

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_lines(
        self, organization_id: int, lines: Iterable[RecipeLine]
    ) -> list[tuple[Ingredient, Decimal]]:
        """
        Check the ingredient list and resolve the ingredients.

        Raises:
            ValidationError: empty list, too many lines, duplicates, quantity <= 0
            NotFoundError: an ingredient is not an active ingredient of the organization
        """
        lines = list(lines)
        if not lines:
            raise ValidationError("A recipe needs at least one ingredient")
        if len(lines) > Limits.MAX_RECIPE_LINES:
            raise ValidationError(
                f"A recipe can have at most {Limits.MAX_RECIPE_LINES} ingredients"
            )

        seen: set[int] = set()
        parsed: list[RecipeLine] = []
        for ingredient_id, quantity in lines:
            if ingredient_id in seen:
                raise ValidationError(
                    f"Ingredient {ingredient_id} appears more than once",
                    ingredient_id=ingredient_id,
                )
            seen.add(ingredient_id)
            parsed.append((ingredient_id, validate_positive(quantity, "quantity_used")))

        found = {
            ingredient.id: ingredient
            for ingredient in self._ingredients.find_by_ids(list(seen), organization_id)
        }
        for ingredient_id, _ in parsed:
            if ingredient_id not in found:
                raise NotFoundError("Ingredient", ingredient_id, organization_id=organization_id)

        return [(found[ingredient_id], quantity) for ingredient_id, quantity in parsed]

    def _ensure_unique_name(self, organization_id: int, name: str, recipe_id: int | None = None) -> None:
        existing = self._recipes.find_by_name(organization_id, name)
        if existing is not None and existing.id != recipe_id:
            raise DuplicateEntityError("Recipe", name, organization_id=organization_id)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_recipe(
        self,
        organization_id: int,
        name: str,
        yield_quantity: Decimal | str | int,
        lines: Iterable[RecipeLine],
    ) -> Recipe:
        """
        Create a recipe with its line snapshots and totals computed inline.

        Raises:
            NotFoundError: organization or an ingredient missing
            ConflictError: recipe name already used in the organization
            ValidationError: invalid name, yield or lines
        """
        name = validate_name(name, "Recipe")
        yield_quantity = validate_positive(yield_quantity, "yield_quantity")

        def _create() -> Recipe:
            self._organizations.get_or_raise(organization_id)
            self._ensure_unique_name(organization_id, name)
            pairs = self._validate_lines(organization_id, lines)

            line_costs = compute_line_costs(pairs)
            total_cost, cost_per_portion = summarize_costs(line_costs, yield_quantity)
            recipe = Recipe(
                organization_id=organization_id,
                name=name,
                yield_quantity=yield_quantity,
                total_cost=total_cost,
                cost_per_portion=cost_per_portion,
                version=1,
                ingredients=[
                    RecipeIngredient(
                        ingredient_id=cost.ingredient_id,
                        quantity_used=cost.quantity_used,
                        unit_cost_at_use=cost.unit_cost_at_use,
                        total_cost=cost.total_cost,
                    )
                    for cost in line_costs
                ],
            )
            return self._recipes.save(recipe)

        recipe = run_in_transaction(self._db, _create)
        logger.info(
            "Recipe created",
            recipe_id=recipe.id,
            organization_id=organization_id,
            total_cost=recipe.total_cost,
        )
        return recipe

    def update_recipe(
        self,
        recipe_id: int,
        organization_id: int,
        name: str | None = None,
        yield_quantity: Decimal | str | int | None = None,
        lines: Iterable[RecipeLine] | None = None,
    ) -> Recipe:
        """
        Partial update of name and yield; ``lines`` replaces the whole ingredient list.

        Costs are recomputed and the version bumped in the same transaction;
        after the commit the recipe's menu items are queued for recompute.

        Raises:
            NotFoundError: recipe or an ingredient missing
            ConflictError: new name already used in the organization
            ValidationError: invalid name, yield or lines
        """
        if name is not None:
            name = validate_name(name, "Recipe")
        if yield_quantity is not None:
            yield_quantity = validate_positive(yield_quantity, "yield_quantity")
        new_lines = list(lines) if lines is not None else None

        def _update() -> Recipe:
            recipe = self._recipes.get_or_raise(recipe_id, organization_id)
            if name is not None and name != recipe.name:
                self._ensure_unique_name(organization_id, name, recipe_id)
                recipe.name = name
            if yield_quantity is not None:
                recipe.yield_quantity = yield_quantity

            if new_lines is not None:
                pairs = self._validate_lines(organization_id, new_lines)
                line_costs = compute_line_costs(pairs)
                self._recipes.replace_lines(
                    recipe,
                    [
                        RecipeIngredient(
                            ingredient_id=cost.ingredient_id,
                            quantity_used=cost.quantity_used,
                            unit_cost_at_use=cost.unit_cost_at_use,
                            total_cost=cost.total_cost,
                        )
                        for cost in line_costs
                    ],
                )
            else:
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
            return recipe

        recipe = run_in_transaction(self._db, _update)
        self._dispatcher.recipe_cost_changed(recipe_id)

        logger.info(
            "Recipe updated",
            recipe_id=recipe_id,
            organization_id=organization_id,
            version=recipe.version,
        )
        return recipe

    def recalculate_now(self, recipe_id: int, organization_id: int) -> RecipeCostResult:
        """
        Run the recipe cost stage inline. Menu item updates are still queued.

        Raises:
            NotFoundError: recipe not found in the organization
        """
        self._recipes.get_or_raise(recipe_id, organization_id)
        return RecipeCostCalculator(self._db, self._dispatcher).recalculate(recipe_id)
