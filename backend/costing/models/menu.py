"""
Menu Models: MenuItem and BranchMenu.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK, Money

if TYPE_CHECKING:
    from .organization import Branch
    from .recipe import Recipe


class MenuItem(AuditMixin, Base):
    """
    A sellable item, optionally backed by a recipe.

    computed_cost = recipe cost per yield unit * portion_multiplier.
    margin = (base_price - computed_cost) / base_price, NULL when base_price is 0.
    Items without a recipe are never touched by the cost cascade.
    """

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id"), nullable=False, index=True
    )
    recipe_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("recipe.id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    portion_multiplier: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("1"))
    computed_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    margin: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    # Relationships
    recipe: Mapped[Optional["Recipe"]] = relationship(back_populates="menu_items")
    branch_menus: Mapped[list["BranchMenu"]] = relationship(back_populates="menu_item")

    __table_args__ = (
        CheckConstraint("portion_multiplier >= 0", name="chk_menu_item_multiplier_non_negative"),
        CheckConstraint("base_price >= 0", name="chk_menu_item_price_non_negative"),
    )


class BranchMenu(Base):
    """
    A menu item offered at a branch, with optional per-branch overrides.
    Exactly one row per (branch, menu item).
    """

    __tablename__ = "branch_menu"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price_override: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    branch: Mapped["Branch"] = relationship(back_populates="branch_menus")
    menu_item: Mapped["MenuItem"] = relationship(back_populates="branch_menus")

    __table_args__ = (
        UniqueConstraint("branch_id", "menu_item_id", name="uq_branch_menu_branch_item"),
    )

    def __repr__(self) -> str:
        return f"<BranchMenu(branch_id={self.branch_id}, menu_item_id={self.menu_item_id})>"
