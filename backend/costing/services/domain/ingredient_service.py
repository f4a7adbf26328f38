"""
Ingredient Domain Service.

Ingredient creation and manual price edits. A manual price edit is a
cost-changing event: after it commits, the ingredient cost update job is
dispatched so every recipe using the ingredient is recomputed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from shared.config.constants import CostHistoryReason, Limits
from shared.config.logging import get_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.exceptions import DuplicateEntityError, ValidationError
from shared.utils.money import ZERO, decimals_equal, quantize
from shared.utils.validators import sanitize_name, validate_name, validate_non_negative
from costing.jobs.types import JobQueue
from costing.models import Ingredient, IngredientCostHistory
from costing.repositories import IngredientRepository, OrganizationRepository
from costing.services.costing import CascadeDispatcher

logger = get_logger(__name__)


class IngredientService:
    """
    Domain service for ingredient operations.

    Usage:
        service = IngredientService(db, get_job_queue())
        service.update_unit_cost(ingredient_id, organization_id, Decimal("3.00"))
    """

    def __init__(self, db: Session, queue: JobQueue):
        self._db = db
        self._dispatcher = CascadeDispatcher(db, queue)
        self._organizations = OrganizationRepository(db)
        self._ingredients = IngredientRepository(db)

    def get_ingredient(self, ingredient_id: int, organization_id: int) -> Ingredient:
        return self._ingredients.get_or_raise(ingredient_id, organization_id)

    def get_cost_history(
        self, ingredient_id: int, organization_id: int
    ) -> Sequence[IngredientCostHistory]:
        self._ingredients.get_or_raise(ingredient_id, organization_id)
        return self._ingredients.find_cost_history(ingredient_id)

    def create_ingredient(
        self,
        organization_id: int,
        name: str,
        unit: str = "unit",
        unit_cost: Decimal | None = None,
        reorder_threshold: Decimal | None = None,
    ) -> Ingredient:
        """
        Create an ingredient, optionally with an initial unit cost.

        Raises:
            NotFoundError: organization does not exist
            ConflictError: name already used in the organization
            ValidationError: invalid name, unit or cost
        """
        name = validate_name(name, "Ingredient")
        unit = sanitize_name(unit)
        if not unit or len(unit) > Limits.MAX_UNIT_LENGTH:
            raise ValidationError(
                f"Ingredient unit is required (max {Limits.MAX_UNIT_LENGTH} characters)"
            )
        cost = None
        if unit_cost is not None:
            cost = quantize(validate_non_negative(unit_cost, "unit_cost"))
        threshold = None
        if reorder_threshold is not None:
            threshold = validate_non_negative(reorder_threshold, "reorder_threshold")

        def _create() -> Ingredient:
            self._organizations.get_or_raise(organization_id)
            if self._ingredients.find_by_name(organization_id, name) is not None:
                raise DuplicateEntityError("Ingredient", name, organization_id=organization_id)

            ingredient = self._ingredients.save(
                Ingredient(
                    organization_id=organization_id,
                    name=name,
                    unit=unit,
                    total_stock=ZERO,
                    average_unit_cost=cost,
                    fifo_unit_cost=cost,
                    reorder_threshold=threshold,
                )
            )
            if cost is not None:
                self._ingredients.add_cost_history(
                    ingredient.id, cost, CostHistoryReason.INITIAL_SETUP
                )
            return ingredient

        ingredient = run_in_transaction(self._db, _create)
        logger.info(
            "Ingredient created",
            ingredient_id=ingredient.id,
            organization_id=organization_id,
            unit_cost=cost,
        )
        return ingredient

    def update_unit_cost(
        self,
        ingredient_id: int,
        organization_id: int,
        unit_cost: Decimal | str | int,
    ) -> Ingredient:
        """
        Manual price edit: set both cost fields, audit it, then start the cascade.

        Re-submitting the current price is a no-op: no history row is written
        and nothing is dispatched.

        Raises:
            NotFoundError: ingredient not found in the organization
            ValidationError: negative or malformed cost
        """
        cost = quantize(validate_non_negative(unit_cost, "unit_cost"))

        def _update() -> tuple[Ingredient, bool]:
            ingredient = self._ingredients.get_or_raise(
                ingredient_id, organization_id, include_inactive=False
            )
            if decimals_equal(ingredient.average_unit_cost, cost) and decimals_equal(
                ingredient.fifo_unit_cost, cost
            ):
                return ingredient, False

            ingredient.average_unit_cost = cost
            ingredient.fifo_unit_cost = cost
            self._ingredients.add_cost_history(
                ingredient.id, cost, CostHistoryReason.MANUAL_PRICE_UPDATE
            )
            self._db.flush()
            return ingredient, True

        ingredient, changed = run_in_transaction(self._db, _update)
        if not changed:
            logger.debug("Ingredient price unchanged", ingredient_id=ingredient_id, unit_cost=cost)
            return ingredient

        self._dispatcher.ingredient_cost_changed(ingredient_id)

        logger.info(
            "Ingredient price updated",
            ingredient_id=ingredient_id,
            organization_id=organization_id,
            unit_cost=cost,
        )
        return ingredient
