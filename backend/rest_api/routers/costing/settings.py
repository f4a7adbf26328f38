"""
Company settings router: margin threshold and auto-propagation flag.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from costing.schemas import SettingsOutput, SettingsUpdate
from costing.services.domain import UNSET, CompanySettingsService


router = APIRouter(
    prefix="/api/organizations/{organization_id}/settings",
    tags=["settings"],
)


@router.get("", response_model=SettingsOutput)
def get_settings(
    organization_id: int,
    db: Session = Depends(get_db),
) -> SettingsOutput:
    row = CompanySettingsService(db).get_settings(organization_id)
    return SettingsOutput.model_validate(row)


@router.patch("", response_model=SettingsOutput)
def update_settings(
    organization_id: int,
    body: SettingsUpdate,
    db: Session = Depends(get_db),
) -> SettingsOutput:
    """
    Partial update. An explicit null threshold disables margin alerts;
    leaving the field out keeps the current value.
    """
    threshold = (
        body.target_margin_threshold
        if "target_margin_threshold" in body.model_fields_set
        else UNSET
    )
    row = CompanySettingsService(db).update_settings(
        organization_id,
        target_margin_threshold=threshold,
        auto_propagate_approved_menus=body.auto_propagate_approved_menus,
    )
    return SettingsOutput.model_validate(row)
