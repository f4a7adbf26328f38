"""
Branch Menu Propagator.

Replicates an approved menu item into every active branch of its
organization. Existing (branch, menu item) rows are left untouched, so
propagation can run any number of times.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from shared.config.logging import StructuredLogger, cascade_logger
from shared.infrastructure.db import run_in_transaction
from costing.repositories import BranchMenuRepository, BranchRepository, MenuItemRepository


@dataclass(frozen=True)
class PropagationResult:
    # Rows inserted by this run; already-present pairs are not counted
    branches_processed: int
    total_branches: int


class BranchMenuPropagator:

    def __init__(self, db: Session, logger: StructuredLogger | None = None):
        self._db = db
        self._logger = logger or cascade_logger
        self._menu_items = MenuItemRepository(db)
        self._branches = BranchRepository(db)
        self._branch_menus = BranchMenuRepository(db)

    def propagate(self, menu_item_id: int, organization_id: int) -> PropagationResult:
        """
        Raises:
            NotFoundError: menu item missing or owned by another organization
        """
        return run_in_transaction(
            self._db, lambda: self._apply(menu_item_id, organization_id)
        )

    def _apply(self, menu_item_id: int, organization_id: int) -> PropagationResult:
        self._menu_items.get_or_raise(menu_item_id, organization_id)

        branch_ids = list(self._branches.find_active_ids(organization_id))
        if not branch_ids:
            self._logger.info(
                "Organization has no active branches",
                menu_item_id=menu_item_id,
                organization_id=organization_id,
            )
            return PropagationResult(branches_processed=0, total_branches=0)

        inserted = self._branch_menus.insert_skip_duplicates([
            {"branch_id": branch_id, "menu_item_id": menu_item_id, "is_available": True}
            for branch_id in branch_ids
        ])

        self._logger.info(
            "Menu item propagated to branches",
            menu_item_id=menu_item_id,
            organization_id=organization_id,
            inserted=inserted,
            total_branches=len(branch_ids),
        )
        return PropagationResult(branches_processed=inserted, total_branches=len(branch_ids))
