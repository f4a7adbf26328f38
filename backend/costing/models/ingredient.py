"""
Ingredient Models: Ingredient, IngredientBatch, IngredientCostHistory.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK, Money, utcnow

if TYPE_CHECKING:
    from .recipe import RecipeIngredient


class Ingredient(AuditMixin, Base):
    """
    Raw material tracked in stock.

    average_unit_cost and fifo_unit_cost are derived from the open batches by
    the inventory valuation calculator (or set directly by a manual price
    update). Both are NULL until the ingredient has a cost.
    """

    __tablename__ = "ingredient"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="unit")
    total_stock: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    average_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    fifo_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    reorder_threshold: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    # Relationships
    batches: Mapped[list["IngredientBatch"]] = relationship(
        back_populates="ingredient", order_by="IngredientBatch.created_at"
    )
    cost_history: Mapped[list["IngredientCostHistory"]] = relationship(
        back_populates="ingredient", order_by="IngredientCostHistory.recorded_at"
    )
    recipe_lines: Mapped[list["RecipeIngredient"]] = relationship(back_populates="ingredient")

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_ingredient_organization_name"),
    )

    @property
    def effective_unit_cost(self) -> Optional[Decimal]:
        """FIFO cost when known, otherwise the weighted average."""
        if self.fifo_unit_cost is not None:
            return self.fifo_unit_cost
        return self.average_unit_cost


class IngredientBatch(Base):
    """
    One stock receipt of an ingredient.

    unit_cost never changes once the batch is created. Consumption lowers
    remaining_quantity and closes the batch when it reaches zero; only open
    batches take part in valuation. created_at defines FIFO order.
    """

    __tablename__ = "ingredient_batch"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ingredient.id", ondelete="CASCADE"), nullable=False
    )
    unit_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    initial_quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    ingredient: Mapped["Ingredient"] = relationship(back_populates="batches")

    __table_args__ = (
        CheckConstraint("remaining_quantity >= 0", name="chk_batch_remaining_non_negative"),
        CheckConstraint("unit_cost >= 0", name="chk_batch_unit_cost_non_negative"),
        # Valuation reads open batches of one ingredient in FIFO order
        Index("ix_ingredient_batch_open_fifo", "ingredient_id", "is_closed", "created_at"),
    )

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<IngredientBatch(id={self.id}, ingredient_id={self.ingredient_id}, {state})>"


class IngredientCostHistory(Base):
    """
    Append-only audit of unit cost changes. Rows are never updated or deleted.
    """

    __tablename__ = "ingredient_cost_history"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ingredient.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    ingredient: Mapped["Ingredient"] = relationship(back_populates="cost_history")

    def __repr__(self) -> str:
        return (
            f"<IngredientCostHistory(ingredient_id={self.ingredient_id}, "
            f"unit_cost={self.unit_cost}, reason='{self.reason}')>"
        )
