"""
Organization Repositories - branches and company settings.
"""

from decimal import Decimal
from typing import Sequence
from sqlalchemy import select

from costing.models import Branch, CompanySettings, Organization
from shared.config.settings import settings
from shared.utils.money import to_decimal
from .base import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    """Repository for Organization entities."""

    entity_name = "Organization"

    @property
    def model(self) -> type[Organization]:
        return Organization

    def _scoped(self, query, organization_id):
        # Organizations are the tenant root; scoping is by their own id
        if organization_id is not None:
            query = query.where(Organization.id == organization_id)
        return query


class BranchRepository(BaseRepository[Branch]):
    """Repository for Branch entities."""

    entity_name = "Branch"

    @property
    def model(self) -> type[Branch]:
        return Branch

    def find_active_ids(self, organization_id: int) -> Sequence[int]:
        """Ids of all active branches of an organization, ascending."""
        return self._db.execute(
            select(Branch.id)
            .where(
                Branch.organization_id == organization_id,
                Branch.is_active.is_(True),
            )
            .order_by(Branch.id)
        ).scalars().all()


class CompanySettingsRepository:
    """
    Read/write access to per-organization costing settings.

    Not a BaseRepository: rows are addressed by organization id, not by their own id.
    """

    def __init__(self, db):
        self._db = db

    def find_by_organization(self, organization_id: int) -> CompanySettings | None:
        return self._db.scalar(
            select(CompanySettings).where(CompanySettings.organization_id == organization_id)
        )

    def get_target_margin_threshold(self, organization_id: int) -> Decimal | None:
        """Configured threshold, or None when the organization has no settings row."""
        row = self.find_by_organization(organization_id)
        return row.target_margin_threshold if row is not None else None

    def get_auto_propagate(self, organization_id: int) -> bool:
        """Whether approved menu items replicate to branches; default when no row."""
        row = self.find_by_organization(organization_id)
        if row is None:
            return settings.default_auto_propagate_approved_menus
        return row.auto_propagate_approved_menus

    def create_defaults(self, organization_id: int) -> CompanySettings:
        """Insert the default settings row. The caller owns the transaction."""
        row = CompanySettings(
            organization_id=organization_id,
            target_margin_threshold=to_decimal(settings.default_target_margin_threshold),
            auto_propagate_approved_menus=settings.default_auto_propagate_approved_menus,
        )
        self._db.add(row)
        self._db.flush()
        return row
