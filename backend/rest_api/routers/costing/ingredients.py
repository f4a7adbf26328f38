"""
Ingredients router: ingredient master data, manual prices, stock batches
and low-stock alerts.

Every mutation commits first and then queues the cascade job, so the
response reflects the ingredient itself; recipes and menu items catch up
asynchronously.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from costing.jobs import JobQueue
from costing.schemas import (
    BatchOutput,
    CostHistoryOutput,
    IngredientCostUpdate,
    IngredientCreate,
    IngredientOutput,
    LowStockAlertOutput,
    StockAdjustment,
    StockConsumption,
    StockReceipt,
)
from costing.services.domain import IngredientService, InventoryService
from rest_api.routers._common import get_queue


router = APIRouter(
    prefix="/api/organizations/{organization_id}/ingredients",
    tags=["ingredients"],
)


@router.post("", response_model=IngredientOutput, status_code=status.HTTP_201_CREATED)
def create_ingredient(
    organization_id: int,
    body: IngredientCreate,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> IngredientOutput:
    ingredient = IngredientService(db, queue).create_ingredient(
        organization_id,
        body.name,
        unit=body.unit,
        unit_cost=body.unit_cost,
        reorder_threshold=body.reorder_threshold,
    )
    return IngredientOutput.model_validate(ingredient)


@router.get("/low-stock", response_model=list[LowStockAlertOutput])
def list_low_stock(
    organization_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> list[LowStockAlertOutput]:
    """Ingredients whose stock fell to or below their reorder threshold."""
    ingredients = InventoryService(db, queue).low_stock_alerts(organization_id)
    return [LowStockAlertOutput.model_validate(i) for i in ingredients]


@router.get("/{ingredient_id}", response_model=IngredientOutput)
def get_ingredient(
    organization_id: int,
    ingredient_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> IngredientOutput:
    ingredient = IngredientService(db, queue).get_ingredient(ingredient_id, organization_id)
    return IngredientOutput.model_validate(ingredient)


@router.patch("/{ingredient_id}/cost", response_model=IngredientOutput)
def update_ingredient_cost(
    organization_id: int,
    ingredient_id: int,
    body: IngredientCostUpdate,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> IngredientOutput:
    """Manual price edit. Recipes using the ingredient are recomputed by the cascade."""
    ingredient = IngredientService(db, queue).update_unit_cost(
        ingredient_id, organization_id, body.unit_cost
    )
    return IngredientOutput.model_validate(ingredient)


@router.get("/{ingredient_id}/cost-history", response_model=list[CostHistoryOutput])
def list_cost_history(
    organization_id: int,
    ingredient_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> list[CostHistoryOutput]:
    rows = IngredientService(db, queue).get_cost_history(ingredient_id, organization_id)
    return [CostHistoryOutput.model_validate(row) for row in rows]


# =============================================================================
# Stock batches
# =============================================================================


@router.get("/{ingredient_id}/batches", response_model=list[BatchOutput])
def list_open_batches(
    organization_id: int,
    ingredient_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> list[BatchOutput]:
    batches = InventoryService(db, queue).list_open_batches(ingredient_id, organization_id)
    return [BatchOutput.model_validate(b) for b in batches]


@router.post(
    "/{ingredient_id}/batches",
    response_model=BatchOutput,
    status_code=status.HTTP_201_CREATED,
)
def receive_stock(
    organization_id: int,
    ingredient_id: int,
    body: StockReceipt,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> BatchOutput:
    """Record a stock receipt; the ingredient is revalued by the inventory queue."""
    batch = InventoryService(db, queue).receive_stock(
        ingredient_id, organization_id, body.quantity, body.unit_cost
    )
    return BatchOutput.model_validate(batch)


@router.post("/{ingredient_id}/consumptions", response_model=list[BatchOutput])
def consume_stock(
    organization_id: int,
    ingredient_id: int,
    body: StockConsumption,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> list[BatchOutput]:
    """Draw stock oldest batch first. Returns the batches that were touched."""
    batches = InventoryService(db, queue).consume_stock(
        ingredient_id, organization_id, body.quantity
    )
    return [BatchOutput.model_validate(b) for b in batches]


@router.post("/{ingredient_id}/adjustments", response_model=IngredientOutput)
def adjust_stock(
    organization_id: int,
    ingredient_id: int,
    body: StockAdjustment,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> IngredientOutput:
    """Correct the stock level. Batches and unit costs are left as they are."""
    ingredient = InventoryService(db, queue).adjust_stock(
        ingredient_id, organization_id, body.quantity, body.reason
    )
    return IngredientOutput.model_validate(ingredient)
