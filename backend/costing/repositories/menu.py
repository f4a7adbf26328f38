"""
Menu Repositories - menu items and their branch replicas.
"""

from typing import Sequence
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite

from costing.models import BranchMenu, MenuItem
from .base import BaseRepository


class MenuItemRepository(BaseRepository[MenuItem]):
    """Repository for MenuItem entities."""

    entity_name = "Menu item"

    @property
    def model(self) -> type[MenuItem]:
        return MenuItem

    def find_active_ids(self, organization_id: int) -> Sequence[int]:
        """Ids of the organization's active menu items, ascending."""
        return self._db.execute(
            select(MenuItem.id)
            .where(
                MenuItem.organization_id == organization_id,
                MenuItem.is_active.is_(True),
            )
            .order_by(MenuItem.id)
        ).scalars().all()

    def find_active_ids_for_recipe(self, recipe_id: int) -> Sequence[int]:
        """Ids of active menu items linked to a recipe, ascending."""
        return self._db.execute(
            select(MenuItem.id)
            .where(
                MenuItem.recipe_id == recipe_id,
                MenuItem.is_active.is_(True),
            )
            .order_by(MenuItem.id)
        ).scalars().all()


class BranchMenuRepository:
    """Write access to branch menu rows with duplicate-tolerant inserts."""

    def __init__(self, db):
        self._db = db

    def _insert(self):
        dialect = self._db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(BranchMenu)
        if dialect == "sqlite":
            return sqlite.insert(BranchMenu)
        raise NotImplementedError(f"Duplicate-skipping insert not supported on {dialect}")

    def insert_skip_duplicates(self, rows: list[dict]) -> int:
        """
        Insert rows, silently skipping (branch_id, menu_item_id) pairs that exist.

        Returns:
            Number of rows actually inserted
        """
        if not rows:
            return 0
        stmt = (
            self._insert()
            .values(rows)
            .on_conflict_do_nothing(index_elements=["branch_id", "menu_item_id"])
        )
        result = self._db.execute(stmt)
        return max(result.rowcount or 0, 0)

    def count_for_menu_item(self, menu_item_id: int) -> int:
        return self._db.scalar(
            select(func.count())
            .select_from(BranchMenu)
            .where(BranchMenu.menu_item_id == menu_item_id)
        ) or 0

    def find_for_menu_item(self, menu_item_id: int) -> Sequence[BranchMenu]:
        return self._db.execute(
            select(BranchMenu)
            .where(BranchMenu.menu_item_id == menu_item_id)
            .order_by(BranchMenu.branch_id)
        ).scalars().all()
