"""
Menu items router: recipe linking, approval and branch propagation.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from costing.jobs import JobQueue
from costing.schemas import (
    ApprovalOutput,
    MenuItemCreate,
    MenuItemOutput,
    MenuRecipeLink,
    PropagationOutput,
)
from costing.services.domain import MenuService
from rest_api.routers._common import get_queue


router = APIRouter(
    prefix="/api/organizations/{organization_id}/menu-items",
    tags=["menu-items"],
)


@router.post("", response_model=MenuItemOutput, status_code=status.HTTP_201_CREATED)
def create_menu_item(
    organization_id: int,
    body: MenuItemCreate,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> MenuItemOutput:
    item = MenuService(db, queue).create_menu_item(
        organization_id,
        body.name,
        body.base_price,
        portion_multiplier=body.portion_multiplier,
        recipe_id=body.recipe_id,
    )
    return MenuItemOutput.model_validate(item)


@router.get("/{menu_item_id}", response_model=MenuItemOutput)
def get_menu_item(
    organization_id: int,
    menu_item_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> MenuItemOutput:
    item = MenuService(db, queue).get_menu_item(menu_item_id, organization_id)
    return MenuItemOutput.model_validate(item)


@router.put("/{menu_item_id}/recipe", response_model=MenuItemOutput)
def link_recipe(
    organization_id: int,
    menu_item_id: int,
    body: MenuRecipeLink,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> MenuItemOutput:
    """Link (or with null, unlink) the item's recipe. Cost and margin follow via the queue."""
    item = MenuService(db, queue).link_recipe(menu_item_id, organization_id, body.recipe_id)
    return MenuItemOutput.model_validate(item)


@router.post(
    "/{menu_item_id}/approve",
    response_model=ApprovalOutput,
    status_code=status.HTTP_202_ACCEPTED,
)
def approve_menu_item(
    organization_id: int,
    menu_item_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> ApprovalOutput:
    """
    Approval hook. Propagation to every branch is queued only when the
    organization has auto-propagation enabled.
    """
    enqueued = MenuService(db, queue).approve(menu_item_id, organization_id)
    return ApprovalOutput(menu_item_id=menu_item_id, propagation_enqueued=enqueued)


@router.post("/{menu_item_id}/propagate", response_model=PropagationOutput)
def propagate_menu_item(
    organization_id: int,
    menu_item_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> PropagationOutput:
    """Replicate the item into all active branches now, skipping existing links."""
    result = MenuService(db, queue).propagate_now(menu_item_id, organization_id)
    return PropagationOutput(
        menu_item_id=menu_item_id,
        branches_processed=result.branches_processed,
        total_branches=result.total_branches,
    )
