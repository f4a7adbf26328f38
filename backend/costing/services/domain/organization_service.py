"""
Organization Domain Service.

Tenant and branch setup, used by the CLI to bootstrap an organization.

A new branch inherits the organization's active menu items when
auto-propagation is enabled, the same rows the branch menu propagator
writes for existing branches.
"""

from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.exceptions import DuplicateEntityError, ValidationError
from shared.utils.validators import validate_name
from costing.models import Branch, Organization
from costing.repositories import (
    BranchMenuRepository,
    BranchRepository,
    CompanySettingsRepository,
    MenuItemRepository,
    OrganizationRepository,
)

logger = get_logger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class OrganizationService:

    def __init__(self, db: Session):
        self._db = db
        self._organizations = OrganizationRepository(db)
        self._branches = BranchRepository(db)
        self._settings = CompanySettingsRepository(db)
        self._menu_items = MenuItemRepository(db)
        self._branch_menus = BranchMenuRepository(db)

    def create_organization(self, name: str, slug: str) -> Organization:
        """
        Create an organization together with its default settings row.

        Raises:
            ValidationError: invalid name or slug
            ConflictError: slug already taken
        """
        name = validate_name(name, "Organization")
        slug = (slug or "").strip().lower()
        if not SLUG_PATTERN.match(slug):
            raise ValidationError("Slug must be lowercase letters, digits and dashes", slug=slug)

        def _create() -> Organization:
            if self._db.scalar(select(Organization).where(Organization.slug == slug)) is not None:
                raise DuplicateEntityError("Organization", slug)
            organization = self._organizations.save(Organization(name=name, slug=slug))
            self._settings.create_defaults(organization.id)
            return organization

        organization = run_in_transaction(self._db, _create)
        logger.info("Organization created", organization_id=organization.id, slug=slug)
        return organization

    def create_branch(self, organization_id: int, name: str, address: str | None = None) -> Branch:
        """
        Create a branch. With auto-propagation on, the organization's active
        menu items are added to the branch menu in the same transaction.

        Raises:
            NotFoundError: organization does not exist
        """
        name = validate_name(name, "Branch")

        def _create() -> tuple[Branch, int]:
            self._organizations.get_or_raise(organization_id)
            branch = self._branches.save(
                Branch(organization_id=organization_id, name=name, address=address)
            )
            if not self._settings.get_auto_propagate(organization_id):
                return branch, 0
            inherited = self._branch_menus.insert_skip_duplicates([
                {"branch_id": branch.id, "menu_item_id": menu_item_id, "is_available": True}
                for menu_item_id in self._menu_items.find_active_ids(organization_id)
            ])
            return branch, inherited

        branch, inherited = run_in_transaction(self._db, _create)
        logger.info(
            "Branch created",
            branch_id=branch.id,
            organization_id=organization_id,
            menu_items_inherited=inherited,
        )
        return branch
