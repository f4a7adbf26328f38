"""
Inventory Domain Service.

Stock receipts and consumption. Both change the set of open batches, so
after each commit a batch change job is dispatched and the ingredient is
revalued asynchronously.

Manual adjustments correct the stock level only; they leave batches and
unit costs alone and start no cascade.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from shared.config.constants import Limits
from shared.config.logging import get_logger
from shared.infrastructure.db import run_in_transaction
from shared.utils.exceptions import ValidationError
from shared.utils.money import ZERO, quantize
from shared.utils.validators import (
    parse_decimal,
    sanitize_name,
    validate_non_negative,
    validate_positive,
)
from costing.jobs.types import JobQueue
from costing.models import Ingredient, IngredientBatch
from costing.repositories import (
    IngredientBatchRepository,
    IngredientRepository,
    OrganizationRepository,
)
from costing.services.costing import CascadeDispatcher

logger = get_logger(__name__)


class InventoryService:
    """Domain service for stock movements."""

    def __init__(self, db: Session, queue: JobQueue):
        self._db = db
        self._dispatcher = CascadeDispatcher(db, queue)
        self._ingredients = IngredientRepository(db)
        self._batches = IngredientBatchRepository(db)
        self._organizations = OrganizationRepository(db)

    def list_open_batches(self, ingredient_id: int, organization_id: int) -> Sequence[IngredientBatch]:
        self._ingredients.get_or_raise(ingredient_id, organization_id)
        return self._batches.find_open(ingredient_id)

    def receive_stock(
        self,
        ingredient_id: int,
        organization_id: int,
        quantity: Decimal | str | int,
        unit_cost: Decimal | str | int,
    ) -> IngredientBatch:
        """
        Record a stock receipt as a new open batch.

        Raises:
            NotFoundError: ingredient not found in the organization
            ValidationError: quantity <= 0 or negative cost
        """
        quantity = quantize(validate_positive(quantity, "quantity"))
        unit_cost = quantize(validate_non_negative(unit_cost, "unit_cost"))

        def _receive() -> IngredientBatch:
            ingredient = self._ingredients.get_or_raise(
                ingredient_id, organization_id, include_inactive=False
            )
            batch = self._batches.add(
                IngredientBatch(
                    ingredient_id=ingredient.id,
                    unit_cost=unit_cost,
                    initial_quantity=quantity,
                    remaining_quantity=quantity,
                    is_closed=False,
                )
            )
            ingredient.total_stock = quantize(ingredient.total_stock + quantity)
            self._db.flush()
            return batch

        batch = run_in_transaction(self._db, _receive)
        self._dispatcher.batch_changed(ingredient_id)

        logger.info(
            "Stock received",
            ingredient_id=ingredient_id,
            batch_id=batch.id,
            quantity=quantity,
            unit_cost=unit_cost,
        )
        return batch

    def consume_stock(
        self,
        ingredient_id: int,
        organization_id: int,
        quantity: Decimal | str | int,
    ) -> list[IngredientBatch]:
        """
        Consume stock from open batches, oldest first, closing emptied batches.

        Returns:
            The batches that were drawn from

        Raises:
            NotFoundError: ingredient not found in the organization
            ValidationError: quantity <= 0 or more than the open stock
        """
        quantity = quantize(validate_positive(quantity, "quantity"))

        def _consume() -> list[IngredientBatch]:
            ingredient = self._ingredients.get_or_raise(
                ingredient_id, organization_id, include_inactive=False
            )
            batches = self._batches.find_open(ingredient_id)
            available = sum((b.remaining_quantity for b in batches), ZERO)
            if quantity > available:
                raise ValidationError(
                    f"Cannot consume {quantity}: only {available} in open batches",
                    ingredient_id=ingredient_id,
                )

            remaining = quantity
            touched = []
            for batch in batches:
                if remaining <= ZERO:
                    break
                taken = min(batch.remaining_quantity, remaining)
                batch.remaining_quantity = batch.remaining_quantity - taken
                if batch.remaining_quantity <= ZERO:
                    batch.is_closed = True
                remaining -= taken
                touched.append(batch)

            ingredient.total_stock = max(quantize(ingredient.total_stock - quantity), ZERO)
            self._db.flush()
            return touched

        touched = run_in_transaction(self._db, _consume)
        self._dispatcher.batch_changed(ingredient_id)

        logger.info(
            "Stock consumed",
            ingredient_id=ingredient_id,
            quantity=quantity,
            batches=len(touched),
        )
        return touched

    def adjust_stock(
        self,
        ingredient_id: int,
        organization_id: int,
        quantity: Decimal | str | int,
        reason: str,
    ) -> Ingredient:
        """
        Correct the stock level by a signed quantity (stocktake differences,
        breakage found on the shelf).

        Raises:
            NotFoundError: ingredient not found in the organization
            ValidationError: zero or malformed quantity, missing reason, or
                an adjustment that would take the stock below zero
        """
        quantity = quantize(parse_decimal(quantity, "quantity"))
        if quantity == ZERO:
            raise ValidationError("quantity must not be zero", field="quantity")
        reason = sanitize_name(reason)
        if not reason or len(reason) > Limits.MAX_REASON_LENGTH:
            raise ValidationError(
                f"An adjustment reason of at most {Limits.MAX_REASON_LENGTH} characters is required",
                field="reason",
            )

        def _adjust() -> Ingredient:
            ingredient = self._ingredients.get_or_raise(
                ingredient_id, organization_id, include_inactive=False
            )
            new_total = quantize(ingredient.total_stock + quantity)
            if new_total < ZERO:
                raise ValidationError(
                    f"Insufficient stock for adjustment: {ingredient.total_stock} available",
                    ingredient_id=ingredient_id,
                    quantity=str(quantity),
                )
            ingredient.total_stock = new_total
            self._db.flush()
            return ingredient

        ingredient = run_in_transaction(self._db, _adjust)
        logger.info(
            "Stock adjusted",
            ingredient_id=ingredient_id,
            quantity=quantity,
            total_stock=ingredient.total_stock,
            reason=reason,
        )
        return ingredient

    def low_stock_alerts(self, organization_id: int) -> Sequence[Ingredient]:
        """
        Active ingredients at or below their reorder threshold, by name.

        Raises:
            NotFoundError: organization does not exist
        """
        self._organizations.get_or_raise(organization_id)
        return self._ingredients.find_low_stock(organization_id)
