"""
Pydantic schemas for the costing API.
Centralized to avoid circular imports between routers.

Decimal fields are serialized as JSON strings so no precision is lost.
Business rules (positive yields, non-negative costs, ...) are checked by
the domain services, which answer 400 with a readable message.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from shared.config.constants import Limits


# =============================================================================
# Ingredient Schemas
# =============================================================================


class IngredientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    unit: str = Field(default="unit", min_length=1, max_length=Limits.MAX_UNIT_LENGTH)
    unit_cost: Decimal | None = None
    reorder_threshold: Decimal | None = None


class IngredientCostUpdate(BaseModel):
    unit_cost: Decimal


class IngredientOutput(BaseModel):
    id: int
    organization_id: int
    name: str
    unit: str
    total_stock: Decimal
    average_unit_cost: Decimal | None = None
    fifo_unit_cost: Decimal | None = None
    effective_unit_cost: Decimal | None = None
    reorder_threshold: Decimal | None = None
    is_active: bool

    class Config:
        from_attributes = True


class CostHistoryOutput(BaseModel):
    unit_cost: Decimal
    reason: str
    recorded_at: datetime

    class Config:
        from_attributes = True


class StockReceipt(BaseModel):
    quantity: Decimal
    unit_cost: Decimal


class StockConsumption(BaseModel):
    quantity: Decimal


class StockAdjustment(BaseModel):
    """Signed correction of the stock level: positive adds, negative removes."""

    quantity: Decimal
    reason: str = Field(min_length=1, max_length=Limits.MAX_REASON_LENGTH)


class LowStockAlertOutput(BaseModel):
    id: int
    name: str
    unit: str
    total_stock: Decimal
    reorder_threshold: Decimal

    class Config:
        from_attributes = True


class BatchOutput(BaseModel):
    id: int
    ingredient_id: int
    unit_cost: Decimal
    initial_quantity: Decimal
    remaining_quantity: Decimal
    is_closed: bool
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Recipe Schemas
# =============================================================================


class RecipeLineInput(BaseModel):
    ingredient_id: int
    quantity_used: Decimal


class RecipeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    yield_quantity: Decimal
    ingredients: list[RecipeLineInput]


class RecipeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    yield_quantity: Decimal | None = None
    # When present, replaces the whole ingredient list
    ingredients: list[RecipeLineInput] | None = None


class RecipeLineOutput(BaseModel):
    id: int
    ingredient_id: int
    quantity_used: Decimal
    unit_cost_at_use: Decimal
    total_cost: Decimal

    class Config:
        from_attributes = True


class RecipeOutput(BaseModel):
    id: int
    organization_id: int
    name: str
    yield_quantity: Decimal
    total_cost: Decimal
    cost_per_portion: Decimal
    version: int
    is_active: bool
    ingredients: list[RecipeLineOutput] = Field(default_factory=list)

    class Config:
        from_attributes = True


class RecipeCostOutput(BaseModel):
    recipe_id: int
    total_cost: Decimal
    cost_per_portion: Decimal
    version: int
    line_count: int

    class Config:
        from_attributes = True


# =============================================================================
# Menu Item Schemas
# =============================================================================


class MenuItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    base_price: Decimal
    portion_multiplier: Decimal = Decimal("1")
    recipe_id: int | None = None


class MenuRecipeLink(BaseModel):
    # None unlinks the recipe
    recipe_id: int | None = None


class MenuItemOutput(BaseModel):
    id: int
    organization_id: int
    recipe_id: int | None = None
    name: str
    base_price: Decimal
    portion_multiplier: Decimal
    computed_cost: Decimal | None = None
    margin: Decimal | None = None
    is_active: bool

    class Config:
        from_attributes = True


class ApprovalOutput(BaseModel):
    menu_item_id: int
    propagation_enqueued: bool


class PropagationOutput(BaseModel):
    menu_item_id: int
    branches_processed: int
    total_branches: int


# =============================================================================
# Settings Schemas
# =============================================================================


class SettingsOutput(BaseModel):
    organization_id: int
    target_margin_threshold: Decimal | None = None
    auto_propagate_approved_menus: bool

    class Config:
        from_attributes = True


class SettingsUpdate(BaseModel):
    # Explicit null clears the threshold; omitting the field leaves it unchanged
    target_margin_threshold: Decimal | None = None
    auto_propagate_approved_menus: bool | None = None


# =============================================================================
# Job Schemas
# =============================================================================


class JobOutput(BaseModel):
    id: str
    queue: str
    name: str
    data: dict[str, Any]
    priority: int
    attempts_made: int
    max_attempts: int
    status: str
    created_at: int
    processed_at: int | None = None
    finished_at: int | None = None
    failed_reason: str | None = None
    return_value: Any = None


class QueueStatsOutput(BaseModel):
    queue: str
    waiting: int
    active: int
    delayed: int
    completed: int
    failed: int


class QueueCleanRequest(BaseModel):
    status: str = "failed"
    grace_seconds: int | None = Field(default=None, ge=0)


class QueueCleanOutput(BaseModel):
    queue: str
    status: str
    removed: int
