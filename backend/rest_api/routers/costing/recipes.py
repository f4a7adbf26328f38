"""
Recipes router: recipe sheets with their cost snapshot.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from costing.jobs import JobQueue
from costing.schemas import (
    RecipeCostOutput,
    RecipeCreate,
    RecipeLineInput,
    RecipeOutput,
    RecipeUpdate,
)
from costing.services.domain import RecipeService
from rest_api.routers._common import get_queue


router = APIRouter(
    prefix="/api/organizations/{organization_id}/recipes",
    tags=["recipes"],
)


def _lines(items: list[RecipeLineInput]) -> list[tuple[int, Decimal]]:
    return [(item.ingredient_id, item.quantity_used) for item in items]


@router.post("", response_model=RecipeOutput, status_code=status.HTTP_201_CREATED)
def create_recipe(
    organization_id: int,
    body: RecipeCreate,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> RecipeOutput:
    """Create a recipe; its totals are computed before the response."""
    recipe = RecipeService(db, queue).create_recipe(
        organization_id,
        body.name,
        body.yield_quantity,
        _lines(body.ingredients),
    )
    return RecipeOutput.model_validate(recipe)


@router.get("/{recipe_id}", response_model=RecipeOutput)
def get_recipe(
    organization_id: int,
    recipe_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> RecipeOutput:
    recipe = RecipeService(db, queue).get_recipe(recipe_id, organization_id)
    return RecipeOutput.model_validate(recipe)


@router.put("/{recipe_id}", response_model=RecipeOutput)
def update_recipe(
    organization_id: int,
    recipe_id: int,
    body: RecipeUpdate,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> RecipeOutput:
    """
    Update name, yield or the full ingredient list.
    Linked menu items are recomputed by the cascade.
    """
    recipe = RecipeService(db, queue).update_recipe(
        recipe_id,
        organization_id,
        name=body.name,
        yield_quantity=body.yield_quantity,
        lines=_lines(body.ingredients) if body.ingredients is not None else None,
    )
    return RecipeOutput.model_validate(recipe)


@router.post("/{recipe_id}/recalculate-cost", response_model=RecipeCostOutput)
def recalculate_recipe_cost(
    organization_id: int,
    recipe_id: int,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_queue),
) -> RecipeCostOutput:
    """Recompute inline from current ingredient costs and return the new totals."""
    result = RecipeService(db, queue).recalculate_now(recipe_id, organization_id)
    return RecipeCostOutput.model_validate(result)
