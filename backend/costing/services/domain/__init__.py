"""
Domain services: the mutation entry points of the cost ledger.

Each service validates input, commits its own transaction, and only then
dispatches the cascade job that follows from the change.
"""

from .ingredient_service import IngredientService
from .inventory_service import InventoryService
from .recipe_service import RecipeService
from .menu_service import MenuService
from .settings_service import CompanySettingsService, UNSET, validate_threshold
from .organization_service import OrganizationService

__all__ = [
    "IngredientService",
    "InventoryService",
    "RecipeService",
    "MenuService",
    "CompanySettingsService",
    "UNSET",
    "validate_threshold",
    "OrganizationService",
]
