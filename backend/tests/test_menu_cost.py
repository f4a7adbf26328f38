"""
Tests for menu item cost, margin and threshold alerts.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from shared.utils.exceptions import NotFoundError
from shared.utils.money import margin_for
from costing.models import CompanySettings, MenuItem
from costing.services.costing import (
    MarginAlert,
    MarginThresholdMonitor,
    MenuCostCalculator,
    STATUS_SKIPPED,
    STATUS_UPDATED,
)
from costing.services.domain import IngredientService, MenuService, RecipeService


@pytest.fixture
def dough(db_session, queue, seed_organization):
    flour = IngredientService(db_session, queue).create_ingredient(
        seed_organization.id, "Flour", unit_cost=Decimal("2.00")
    )
    return RecipeService(db_session, queue).create_recipe(
        seed_organization.id, "Dough", Decimal("10"), [(flour.id, Decimal("5"))]
    )


def _item(db_session, queue, organization_id, recipe_id, price="5.00", multiplier="2"):
    return MenuService(db_session, queue).create_menu_item(
        organization_id, "Pizza", Decimal(price), Decimal(multiplier), recipe_id=recipe_id
    )


class TestMarginFor:

    def test_margin_fraction(self):
        assert margin_for(Decimal("5"), Decimal("2")) == Decimal("0.6")

    def test_zero_price_has_no_margin(self):
        assert margin_for(Decimal("0"), Decimal("2")) is None

    def test_cost_above_price_is_negative(self):
        assert margin_for(Decimal("2"), Decimal("3")) == Decimal("-0.5")


class TestMenuCostCalculator:
    """Cost per portion times multiplier; margin from the stored cost."""

    def test_computes_cost_and_margin(self, db_session, queue, seed_organization, dough):
        item = _item(db_session, queue, seed_organization.id, dough.id)

        result = MenuCostCalculator(db_session, MarginThresholdMonitor()).recalculate(item.id)

        assert result.status == STATUS_UPDATED
        assert result.computed_cost == Decimal("2.00")
        assert result.margin == Decimal("0.60")
        assert result.alert_raised is False
        stored = db_session.get(MenuItem, item.id)
        assert stored.computed_cost == Decimal("2.00")
        assert stored.margin == Decimal("0.60")

    def test_item_without_recipe_is_skipped(self, db_session, queue, seed_organization):
        item = _item(db_session, queue, seed_organization.id, None)

        result = MenuCostCalculator(db_session, MarginThresholdMonitor()).recalculate(item.id)

        assert result.skipped
        assert result.status == STATUS_SKIPPED
        assert db_session.get(MenuItem, item.id).computed_cost is None

    def test_zero_price_stores_null_margin(self, db_session, queue, seed_organization, dough):
        item = _item(db_session, queue, seed_organization.id, dough.id, price="0")

        result = MenuCostCalculator(db_session, MarginThresholdMonitor()).recalculate(item.id)

        assert result.computed_cost == Decimal("2.00")
        assert result.margin is None
        assert result.alert_raised is False

    def test_alert_published_below_threshold(self, db_session, queue, seed_organization, dough):
        item = _item(db_session, queue, seed_organization.id, dough.id, price="3.00")
        publisher = MagicMock()

        result = MenuCostCalculator(db_session, MarginThresholdMonitor([publisher])).recalculate(item.id)

        # (3 - 2) / 3
        assert result.margin == Decimal("0.333333")
        assert result.alert_raised is True
        alert = publisher.publish.call_args.args[0]
        assert alert == MarginAlert(
            menu_item_id=item.id,
            organization_id=seed_organization.id,
            margin=Decimal("0.333333"),
            threshold=Decimal("0.50"),
        )

    def test_no_threshold_configured_no_alert(self, db_session, queue, seed_organization, dough):
        row = db_session.query(CompanySettings).filter_by(organization_id=seed_organization.id).one()
        row.target_margin_threshold = None
        db_session.commit()
        item = _item(db_session, queue, seed_organization.id, dough.id, price="2.50")
        publisher = MagicMock()

        result = MenuCostCalculator(db_session, MarginThresholdMonitor([publisher])).recalculate(item.id)

        assert result.margin == Decimal("0.2")
        publisher.publish.assert_not_called()

    def test_missing_menu_item(self, db_session, seed_organization):
        with pytest.raises(NotFoundError):
            MenuCostCalculator(db_session, MarginThresholdMonitor()).recalculate(9999)


class TestMarginThresholdMonitor:

    def test_evaluate_below(self):
        alert = MarginThresholdMonitor.evaluate(1, 2, Decimal("0.40"), Decimal("0.50"))
        assert alert is not None
        assert alert.to_payload() == {
            "menu_item_id": 1,
            "organization_id": 2,
            "margin": "0.40",
            "threshold": "0.50",
        }

    def test_evaluate_equal_is_not_alert(self):
        assert MarginThresholdMonitor.evaluate(1, 2, Decimal("0.50"), Decimal("0.50")) is None

    def test_evaluate_missing_values(self):
        assert MarginThresholdMonitor.evaluate(1, 2, None, Decimal("0.50")) is None
        assert MarginThresholdMonitor.evaluate(1, 2, Decimal("0.10"), None) is None

    def test_check_fans_out_to_every_publisher(self):
        first, second = MagicMock(), MagicMock()
        monitor = MarginThresholdMonitor([first, second])

        alert = monitor.check(1, 2, Decimal("0.10"), Decimal("0.30"))

        first.publish.assert_called_once_with(alert)
        second.publish.assert_called_once_with(alert)

    def test_check_above_threshold_publishes_nothing(self):
        publisher = MagicMock()
        assert MarginThresholdMonitor([publisher]).check(1, 2, Decimal("0.9"), Decimal("0.3")) is None
        publisher.publish.assert_not_called()
