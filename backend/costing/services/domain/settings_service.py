"""
Company Settings Domain Service.

One settings row per organization, created with defaults the first time
it is read through this service.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.exceptions import ValidationError
from shared.utils.money import ZERO, quantize
from shared.utils.validators import parse_decimal
from costing.models import CompanySettings
from costing.repositories import CompanySettingsRepository, OrganizationRepository

logger = get_logger(__name__)

# Marks "leave unchanged" in update_settings, since None clears the threshold
UNSET: Any = object()


def validate_threshold(value: Any) -> Decimal | None:
    """Margin threshold is a fraction in [0, 1), or None to disable alerts."""
    if value is None:
        return None
    threshold = parse_decimal(value, "target_margin_threshold")
    if threshold < ZERO or threshold >= Decimal("1"):
        raise ValidationError(
            "target_margin_threshold must be between 0 (inclusive) and 1 (exclusive)",
            value=str(threshold),
        )
    return quantize(threshold)


class CompanySettingsService:

    def __init__(self, db: Session):
        self._db = db
        self._organizations = OrganizationRepository(db)
        self._settings = CompanySettingsRepository(db)

    def _get_or_create(self, organization_id: int) -> CompanySettings:
        self._organizations.get_or_raise(organization_id)
        row = self._settings.find_by_organization(organization_id)
        if row is None:
            row = self._settings.create_defaults(organization_id)
            logger.info("Default company settings created", organization_id=organization_id)
        return row

    def get_settings(self, organization_id: int) -> CompanySettings:
        """
        Raises:
            NotFoundError: organization does not exist
        """
        return run_in_transaction(self._db, lambda: self._get_or_create(organization_id))

    def update_settings(
        self,
        organization_id: int,
        target_margin_threshold: Any = UNSET,
        auto_propagate_approved_menus: bool | None = None,
    ) -> CompanySettings:
        """
        Update the given fields; omitted fields keep their value.

        Raises:
            NotFoundError: organization does not exist
            ValidationError: threshold outside [0, 1)
        """
        threshold = UNSET
        if target_margin_threshold is not UNSET:
            threshold = validate_threshold(target_margin_threshold)

        def _update() -> CompanySettings:
            row = self._get_or_create(organization_id)
            if threshold is not UNSET:
                row.target_margin_threshold = threshold
            if auto_propagate_approved_menus is not None:
                row.auto_propagate_approved_menus = auto_propagate_approved_menus
            self._db.flush()
            return row

        row = run_in_transaction(self._db, _update)
        logger.info(
            "Company settings updated",
            organization_id=organization_id,
            target_margin_threshold=row.target_margin_threshold,
            auto_propagate_approved_menus=row.auto_propagate_approved_menus,
        )
        return row
