"""
Recipe Repository - recipes with their ingredient lines.
"""

from sqlalchemy import Select, delete, select
from sqlalchemy.orm import selectinload

from costing.models import Recipe, RecipeIngredient
from .base import BaseRepository


class RecipeRepository(BaseRepository[Recipe]):
    """
    Repository for Recipe entities.

    Guarantees eager loading of:
    - ingredients (lines)
    - ingredients.ingredient
    """

    entity_name = "Recipe"

    @property
    def model(self) -> type[Recipe]:
        return Recipe

    def _base_query(self) -> Select:
        return select(Recipe).options(
            selectinload(Recipe.ingredients).selectinload(RecipeIngredient.ingredient)
        )

    def find_by_name(self, organization_id: int, name: str) -> Recipe | None:
        return self._db.scalar(
            select(Recipe).where(
                Recipe.organization_id == organization_id,
                Recipe.name == name,
            )
        )

    def replace_lines(self, recipe: Recipe, lines: list[RecipeIngredient]) -> None:
        """
        Full-replace the ingredient list: delete every old row, insert the new ones.
        The caller owns the transaction, so both halves commit or roll back together.
        """
        self._db.execute(delete(RecipeIngredient).where(RecipeIngredient.recipe_id == recipe.id))
        self._db.expire(recipe, ["ingredients"])
        for line in lines:
            line.recipe_id = recipe.id
            self._db.add(line)
        self._db.flush()
