"""
Repository Pattern implementation.
Every cascade stage reads and writes the cost ledger through these classes.

Usage:
    from costing.repositories import RecipeRepository

    repo = RecipeRepository(db)
    recipe = repo.get_or_raise(recipe_id)
"""

from .base import BaseRepository
from .organization import OrganizationRepository, BranchRepository, CompanySettingsRepository
from .ingredient import IngredientRepository, IngredientBatchRepository
from .recipe import RecipeRepository
from .menu import MenuItemRepository, BranchMenuRepository
from .outbox import OutboxRepository

__all__ = [
    "BaseRepository",
    "OrganizationRepository",
    "BranchRepository",
    "CompanySettingsRepository",
    "IngredientRepository",
    "IngredientBatchRepository",
    "RecipeRepository",
    "MenuItemRepository",
    "BranchMenuRepository",
    "OutboxRepository",
]
