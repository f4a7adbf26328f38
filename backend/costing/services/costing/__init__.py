"""
Cost cascade stages.

ingredient batches -> InventoryValuationCalculator
                   -> CascadeDispatcher -> RecipeCostCalculator
                   -> CascadeDispatcher -> MenuCostCalculator -> MarginThresholdMonitor

BranchMenuPropagator runs separately, on menu item approval.
"""

from .cascade import CascadeDispatcher
from .valuation import InventoryValuationCalculator, Valuation, value_batches
from .recipe_cost import (
    LineCost,
    RecipeCostCalculator,
    RecipeCostResult,
    compute_line_costs,
    summarize_costs,
)
from .margin_monitor import MarginAlert, MarginAlertPublisher, MarginThresholdMonitor
from .menu_cost import MenuCostCalculator, MenuCostResult, STATUS_SKIPPED, STATUS_UPDATED
from .branch_menu import BranchMenuPropagator, PropagationResult

__all__ = [
    "CascadeDispatcher",
    "InventoryValuationCalculator",
    "Valuation",
    "value_batches",
    "LineCost",
    "RecipeCostCalculator",
    "RecipeCostResult",
    "compute_line_costs",
    "summarize_costs",
    "MarginAlert",
    "MarginAlertPublisher",
    "MarginThresholdMonitor",
    "MenuCostCalculator",
    "MenuCostResult",
    "STATUS_SKIPPED",
    "STATUS_UPDATED",
    "BranchMenuPropagator",
    "PropagationResult",
]
