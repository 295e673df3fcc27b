"""
Alert evaluation engine.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from goldwatch.database.models import (
    Alert,
    DailyCondition,
    DecreaseCondition,
    IncreaseCondition,
    PriceSnapshot,
)

logger = logging.getLogger(__name__)

__all__ = ["AlertEvaluator"]


class AlertEvaluator:
    """
    Decides which alerts fire for a new snapshot.

    Pure with respect to its inputs: nothing is loaded or persisted here.
    """

    def evaluate(
        self,
        current: PriceSnapshot,
        previous: Optional[PriceSnapshot],
        alerts: list[Alert],
        now: datetime,
    ) -> list[Alert]:
        """
        Evaluate alerts against the current snapshot.

        Price alerts compare levels, not crossings, so ``previous`` does not
        change the outcome; the frequency gate is what stops a threshold that
        stays crossed from firing every tick.

        Args:
            current: Latest snapshot
            previous: Snapshot before ``current``, if any
            alerts: Alert definitions to check
            now: Evaluation time

        Returns:
            Alerts that should fire, in input order
        """
        triggered = []

        for alert in alerts:
            if not alert.active:
                continue

            if not self.condition_met(alert, current, now):
                continue

            if self.is_suppressed(alert, now):
                logger.debug(
                    f"Alert {alert.id} suppressed; last triggered {alert.last_triggered_at}"
                )
                continue

            triggered.append(alert)

        return triggered

    def condition_met(self, alert: Alert, current: PriceSnapshot, now: datetime) -> bool:
        """Whether the alert's own condition holds, ignoring the frequency gate."""
        condition = alert.condition

        if isinstance(condition, IncreaseCondition):
            return current.price_per_gram >= condition.target_price

        elif isinstance(condition, DecreaseCondition):
            return current.price_per_gram <= condition.target_price

        elif isinstance(condition, DailyCondition):
            return now.hour == condition.hour

        raise ValueError(f"Unknown alert condition: {condition!r}")

    def is_suppressed(self, alert: Alert, now: datetime) -> bool:
        """Whether the alert fired less than ``frequency_hours`` ago."""
        if alert.last_triggered_at is None:
            return False
        return now - alert.last_triggered_at < timedelta(hours=alert.frequency_hours)
