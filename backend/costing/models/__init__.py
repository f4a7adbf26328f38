"""
SQLAlchemy models for the cost ledger.

Modules:
- base.py: Base, AuditMixin, BigIntPK and Money column types
- organization.py: Organization, Branch, CompanySettings
- ingredient.py: Ingredient, IngredientBatch, IngredientCostHistory
- recipe.py: Recipe, RecipeIngredient
- menu.py: MenuItem, BranchMenu
- outbox.py: OutboxEvent, OutboxStatus
"""

from .base import Base, AuditMixin, BigIntPK, Money
from .organization import Organization, Branch, CompanySettings
from .ingredient import Ingredient, IngredientBatch, IngredientCostHistory
from .recipe import Recipe, RecipeIngredient
from .menu import MenuItem, BranchMenu
from .outbox import OutboxEvent, OutboxStatus

__all__ = [
    "Base",
    "AuditMixin",
    "BigIntPK",
    "Money",
    "Organization",
    "Branch",
    "CompanySettings",
    "Ingredient",
    "IngredientBatch",
    "IngredientCostHistory",
    "Recipe",
    "RecipeIngredient",
    "MenuItem",
    "BranchMenu",
    "OutboxEvent",
    "OutboxStatus",
]
