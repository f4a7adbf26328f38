"""
Ingredient Repositories - ingredients, their stock batches and cost history.
"""

from decimal import Decimal
from typing import Sequence
from sqlalchemy import select

from costing.models import Ingredient, IngredientBatch, IngredientCostHistory, RecipeIngredient
from .base import BaseRepository


class IngredientRepository(BaseRepository[Ingredient]):
    """Repository for Ingredient entities."""

    entity_name = "Ingredient"

    @property
    def model(self) -> type[Ingredient]:
        return Ingredient

    def find_by_name(self, organization_id: int, name: str) -> Ingredient | None:
        return self._db.scalar(
            select(Ingredient).where(
                Ingredient.organization_id == organization_id,
                Ingredient.name == name,
            )
        )

    def find_by_ids(self, ingredient_ids: list[int], organization_id: int) -> Sequence[Ingredient]:
        """Active ingredients of the organization among the given ids."""
        if not ingredient_ids:
            return []
        return self._db.execute(
            select(Ingredient).where(
                Ingredient.id.in_(ingredient_ids),
                Ingredient.organization_id == organization_id,
                Ingredient.is_active.is_(True),
            )
        ).scalars().all()

    def find_low_stock(self, organization_id: int) -> Sequence[Ingredient]:
        """Active ingredients whose stock is at or below their reorder threshold."""
        return self._db.execute(
            select(Ingredient)
            .where(
                Ingredient.organization_id == organization_id,
                Ingredient.is_active.is_(True),
                Ingredient.reorder_threshold.is_not(None),
                Ingredient.total_stock <= Ingredient.reorder_threshold,
            )
            .order_by(Ingredient.name)
        ).scalars().all()

    def find_recipe_ids_using(self, ingredient_id: int) -> Sequence[int]:
        """Distinct ids of recipes with a line referencing this ingredient."""
        return self._db.execute(
            select(RecipeIngredient.recipe_id)
            .where(RecipeIngredient.ingredient_id == ingredient_id)
            .distinct()
            .order_by(RecipeIngredient.recipe_id)
        ).scalars().all()

    def add_cost_history(self, ingredient_id: int, unit_cost: Decimal, reason: str) -> IngredientCostHistory:
        """Append an audit row. The caller owns the transaction."""
        entry = IngredientCostHistory(
            ingredient_id=ingredient_id,
            unit_cost=unit_cost,
            reason=reason,
        )
        self._db.add(entry)
        return entry

    def find_cost_history(self, ingredient_id: int) -> Sequence[IngredientCostHistory]:
        return self._db.execute(
            select(IngredientCostHistory)
            .where(IngredientCostHistory.ingredient_id == ingredient_id)
            .order_by(IngredientCostHistory.recorded_at, IngredientCostHistory.id)
        ).scalars().all()


class IngredientBatchRepository:
    """Read access to stock batches; consumption is owned by the inventory collaborator."""

    def __init__(self, db):
        self._db = db

    def find_open(self, ingredient_id: int) -> Sequence[IngredientBatch]:
        """Open batches of an ingredient in FIFO order (oldest first, id breaks ties)."""
        return self._db.execute(
            select(IngredientBatch)
            .where(
                IngredientBatch.ingredient_id == ingredient_id,
                IngredientBatch.is_closed.is_(False),
            )
            .order_by(IngredientBatch.created_at, IngredientBatch.id)
        ).scalars().all()

    def add(self, batch: IngredientBatch) -> IngredientBatch:
        self._db.add(batch)
        self._db.flush()
        return batch
