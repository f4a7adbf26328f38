"""
Costing routers, all scoped to one organization.
- /api/organizations/{id}/ingredients/* - Ingredients, prices and stock batches
- /api/organizations/{id}/recipes/* - Recipe sheets
- /api/organizations/{id}/menu-items/* - Menu items, approval and propagation
- /api/organizations/{id}/settings - Margin threshold and propagation flag
"""

from .ingredients import router as ingredients_router
from .recipes import router as recipes_router
from .menu_items import router as menu_items_router
from .settings import router as settings_router

__all__ = [
    "ingredients_router",
    "recipes_router",
    "menu_items_router",
    "settings_router",
]
