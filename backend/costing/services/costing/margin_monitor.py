"""
Margin Threshold Monitor.

Compares a freshly computed margin against the organization's target and
hands a MarginAlert to its publishers when the margin falls below it. The
monitor never delivers notifications itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from shared.config.logging import StructuredLogger, cascade_logger


@dataclass(frozen=True)
class MarginAlert:
    """A menu item whose margin is below the organization's target."""

    menu_item_id: int
    organization_id: int
    margin: Decimal
    threshold: Decimal

    def to_payload(self) -> dict[str, str | int]:
        # Decimals as strings keep full precision through JSON
        return {
            "menu_item_id": self.menu_item_id,
            "organization_id": self.organization_id,
            "margin": str(self.margin),
            "threshold": str(self.threshold),
        }


class MarginAlertPublisher(Protocol):
    def publish(self, alert: MarginAlert) -> None:
        ...


class MarginThresholdMonitor:
    """
    Usage:
        monitor = MarginThresholdMonitor([OutboxMarginAlertPublisher(db)])
        monitor.check(menu_item.id, menu_item.organization_id, margin, threshold)
    """

    def __init__(
        self,
        publishers: Iterable[MarginAlertPublisher] = (),
        logger: StructuredLogger | None = None,
    ):
        self._publishers = list(publishers)
        self._logger = logger or cascade_logger

    @staticmethod
    def evaluate(
        menu_item_id: int,
        organization_id: int,
        margin: Decimal | None,
        threshold: Decimal | None,
    ) -> MarginAlert | None:
        """Return an alert when margin < threshold; None when either is missing."""
        if margin is None or threshold is None:
            return None
        if margin >= threshold:
            return None
        return MarginAlert(
            menu_item_id=menu_item_id,
            organization_id=organization_id,
            margin=margin,
            threshold=threshold,
        )

    def check(
        self,
        menu_item_id: int,
        organization_id: int,
        margin: Decimal | None,
        threshold: Decimal | None,
    ) -> MarginAlert | None:
        """Evaluate and hand any alert to every publisher."""
        alert = self.evaluate(menu_item_id, organization_id, margin, threshold)
        if alert is None:
            return None

        self._logger.warning(
            "Margin below threshold",
            menu_item_id=menu_item_id,
            organization_id=organization_id,
            margin=margin,
            threshold=threshold,
        )
        for publisher in self._publishers:
            publisher.publish(alert)
        return alert
