"""
Price pipeline: fetch, persist, evaluate, notify.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from goldwatch.data.aggregator import FallbackAggregator
from goldwatch.data.history import DELTA_LOOKBACK, day_over_day
from goldwatch.database.models import (
    AlertType,
    DailyDelta,
    NotificationRecord,
    PriceSnapshot,
)
from goldwatch.database.repository import PersistenceGateway
from goldwatch.exceptions import AggregateFailureError, PersistenceError
from goldwatch.notifiers.dispatcher import NotificationDispatcher
from goldwatch.rules.engine import AlertEvaluator

logger = logging.getLogger(__name__)

PRICE_ALERT_TYPES = (AlertType.INCREASE, AlertType.DECREASE)


@dataclass
class TickResult:
    """Outcome of one scheduled run."""

    snapshot: Optional[PriceSnapshot] = None
    triggered: list[int] = field(default_factory=list)
    records: list[NotificationRecord] = field(default_factory=list)
    error: Optional[str] = None


class GoldWatchApp:
    """Main GoldWatch application."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        aggregator: FallbackAggregator,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime],
        evaluator: Optional[AlertEvaluator] = None,
        stale_after: timedelta = timedelta(hours=3),
    ):
        """
        Initialize GoldWatch app.

        Args:
            gateway: Storage
            aggregator: Source fallback chain
            dispatcher: Notification fan-out
            clock: Returns the current time in the configured timezone
            evaluator: Alert rules; a default instance when omitted
            stale_after: Age beyond which the stored price is refetched on read
        """
        self.gateway = gateway
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.clock = clock
        self.evaluator = evaluator or AlertEvaluator()
        self.stale_after = stale_after

    def run_price_tick(self, refresh: bool = False) -> TickResult:
        """Fetch a price, store it and notify increase/decrease alerts."""
        result = TickResult()
        try:
            snapshot = self.aggregator.fetch(refresh=refresh)
        except AggregateFailureError as e:
            logger.error(f"Price refresh failed: {e}")
            result.error = str(e)
            return result

        try:
            previous = self.gateway.latest_snapshot()
            snapshot = self._persist(snapshot)
            result.snapshot = snapshot

            alerts = [
                a for a in self.gateway.active_alerts() if a.type in PRICE_ALERT_TYPES
            ]
            now = self.clock()
            triggered = self.evaluator.evaluate(snapshot, previous, alerts, now)
            result.triggered = [a.id for a in triggered]
            if triggered:
                logger.info(f"{len(triggered)} price alert(s) triggered")
            result.records = self.dispatcher.dispatch_all(triggered, snapshot)
        except PersistenceError as e:
            logger.error(f"Price tick aborted by storage error: {e}")
            raise

        return result

    def run_daily_tick(self) -> TickResult:
        """Send daily summaries whose configured hour is now."""
        result = TickResult()
        try:
            snapshot = self.gateway.latest_snapshot()
            if snapshot is None:
                logger.warning("No stored gold price; skipping daily summaries")
                result.error = "no price data available"
                return result
            result.snapshot = snapshot

            alerts = [
                a for a in self.gateway.active_alerts() if a.type == AlertType.DAILY
            ]
            now = self.clock()
            triggered = self.evaluator.evaluate(snapshot, None, alerts, now)
            result.triggered = [a.id for a in triggered]
            if not triggered:
                return result

            logger.info(f"Sending {len(triggered)} daily summaries for hour {now.hour:02d}")
            delta = self.daily_delta(snapshot)
            result.records = self.dispatcher.dispatch_all(triggered, snapshot, delta)
        except PersistenceError as e:
            logger.error(f"Daily tick aborted by storage error: {e}")
            raise

        return result

    def current_price(
        self, source: Optional[str] = None, refresh: bool = False
    ) -> PriceSnapshot:
        """
        Latest price, fetching when the store is empty or stale, when a
        refresh is requested, or when a specific source is named.

        Raises:
            AggregateFailureError: If a needed fetch failed on every source
            ValueError: If ``source`` is unknown
        """
        latest = self.gateway.latest_snapshot()
        needs_fetch = (
            refresh
            or source is not None
            or latest is None
            or self.clock() - latest.timestamp > self.stale_after
        )
        if not needs_fetch:
            return latest

        logger.info(
            f"Fetching current price (refresh={refresh}, source={source or 'any'})"
        )
        snapshot = self.aggregator.fetch(source=source, refresh=refresh)
        return self._persist(snapshot)

    def daily_delta(self, snapshot: PriceSnapshot) -> DailyDelta:
        """Day-over-day change for a snapshot."""
        window = self.gateway.snapshots_since(snapshot.timestamp - DELTA_LOOKBACK)
        return day_over_day(snapshot, window)

    def _persist(self, snapshot: PriceSnapshot) -> PriceSnapshot:
        """Append a snapshot unless it is a cached reading already stored."""
        stored = self.gateway.find_snapshot(snapshot.timestamp, snapshot.source)
        if stored is not None:
            logger.debug(f"{snapshot.source} reading from {snapshot.timestamp} already stored")
            return stored
        saved = self.gateway.save_snapshot(snapshot)
        logger.info(
            f"Stored gold price {saved.price_per_gram:.0f} from {saved.source} (id {saved.id})"
        )
        return saved
