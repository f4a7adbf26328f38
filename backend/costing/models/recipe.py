"""
Recipe Models: Recipe and RecipeIngredient.

Recipes are one level deep: a recipe lists ingredients, never other recipes.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK, Money

if TYPE_CHECKING:
    from .ingredient import Ingredient
    from .menu import MenuItem


class Recipe(AuditMixin, Base):
    """
    A preparation producing yield_quantity portions.

    total_cost is always the sum of the line totals; cost_per_portion is
    total_cost / yield_quantity. version is bumped on every cost recompute so
    readers can tell a stale snapshot from a fresh one.
    """

    __tablename__ = "recipe"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    yield_quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    cost_per_portion: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.id",
    )
    menu_items: Mapped[list["MenuItem"]] = relationship(back_populates="recipe")

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_recipe_organization_name"),
        CheckConstraint("yield_quantity > 0", name="chk_recipe_yield_positive"),
    )

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, name='{self.name}', version={self.version})>"


class RecipeIngredient(Base):
    """
    One ingredient line of a recipe with the cost snapshot from the last recompute.
    """

    __tablename__ = "recipe_ingredient"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    recipe_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("recipe.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ingredient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ingredient.id"), nullable=False, index=True
    )
    quantity_used: Mapped[Decimal] = mapped_column(Money, nullable=False)
    unit_cost_at_use: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    recipe: Mapped["Recipe"] = relationship(back_populates="ingredients")
    ingredient: Mapped["Ingredient"] = relationship(back_populates="recipe_lines")

    __table_args__ = (
        UniqueConstraint("recipe_id", "ingredient_id", name="uq_recipe_ingredient"),
        CheckConstraint("quantity_used > 0", name="chk_recipe_ingredient_quantity_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<RecipeIngredient(recipe_id={self.recipe_id}, "
            f"ingredient_id={self.ingredient_id}, total_cost={self.total_cost})>"
        )
