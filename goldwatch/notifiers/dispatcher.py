"""
Fan-out of triggered alerts to their enabled channels.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from goldwatch.database.models import (
    Alert,
    ChannelKind,
    ChannelTarget,
    DailyDelta,
    NotificationRecord,
    NotificationStatus,
    PriceSnapshot,
)
from goldwatch.database.repository import PersistenceGateway
from goldwatch.exceptions import ChannelSendError, PersistenceError
from . import formatters
from .base import NotificationChannel, NotificationResult

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends one alert to every channel it has enabled.

    A failing channel becomes a failed record and never stops the others.
    ``last_triggered_at`` is stamped once dispatch has been attempted, even
    if every channel failed, so an unreachable destination cannot cause a
    resend on every tick.
    """

    def __init__(
        self,
        channels: dict[ChannelKind, NotificationChannel],
        gateway: PersistenceGateway,
        clock: Callable[[], datetime],
    ):
        """
        Args:
            channels: Channel implementation per kind
            gateway: Storage for logs and trigger times
            clock: Returns the current time
        """
        self.channels = channels
        self.gateway = gateway
        self.clock = clock

    def dispatch(
        self,
        alert: Alert,
        snapshot: PriceSnapshot,
        delta: Optional[DailyDelta] = None,
    ) -> list[NotificationRecord]:
        """
        Send an alert on all of its channels.

        Args:
            alert: Triggered alert
            snapshot: Price the alert fired on
            delta: Day-over-day change, used by daily summaries

        Returns:
            One record per enabled channel, in channel order

        Raises:
            PersistenceError: If the trigger time or a log cannot be stored
        """
        targets = list(alert.channels)
        if not targets:
            return []

        with ThreadPoolExecutor(
            max_workers=len(targets), thread_name_prefix="notify"
        ) as pool:
            futures = [
                pool.submit(self._deliver, alert, target, snapshot, delta)
                for target in targets
            ]
            records = [f.result() for f in futures]

        # Logs first: a failed stamp must not lose records of messages already sent
        stored = [self.gateway.insert_notification_log(r) for r in records]

        now = self.clock()
        if alert.id is not None:
            self.gateway.update_last_triggered(alert.id, now)
        alert.last_triggered_at = now

        sent = sum(1 for r in stored if r.status == NotificationStatus.SENT)
        logger.info(
            f"Alert {alert.id} ({alert.type.value}) dispatched: "
            f"{sent}/{len(stored)} channels succeeded"
        )
        return stored

    def dispatch_all(
        self,
        alerts: list[Alert],
        snapshot: PriceSnapshot,
        delta: Optional[DailyDelta] = None,
    ) -> list[NotificationRecord]:
        """
        Dispatch a batch alert by alert.

        Only storage faults escape; anything else is logged against the
        alert and the batch continues.
        """
        records = []
        for alert in alerts:
            try:
                records.extend(self.dispatch(alert, snapshot, delta))
            except PersistenceError:
                raise
            except Exception as e:
                logger.error(f"Error dispatching alert {alert.id}: {e}")
        return records

    def _deliver(
        self,
        alert: Alert,
        target: ChannelTarget,
        snapshot: PriceSnapshot,
        delta: Optional[DailyDelta],
    ) -> NotificationRecord:
        """Attempt one channel; never raises."""
        channel = self.channels.get(target.kind)
        style = channel.message_style if channel else formatters.HTML
        message = formatters.render(alert, snapshot, delta, style)

        if channel is None:
            result = NotificationResult.failed(target.kind.value, "channel not configured")
        else:
            try:
                result = channel.send(target.destination, message)
            except ChannelSendError as e:
                result = NotificationResult.failed(channel.name, e.reason)
            except Exception as e:
                result = NotificationResult.failed(channel.name, f"unexpected error: {e}")

        if not result.success:
            logger.warning(
                f"{target.kind.value} send for alert {alert.id} failed: {result.error}"
            )

        return NotificationRecord(
            alert_id=alert.id,
            channel=target.kind.value,
            message=message,
            status=NotificationStatus.SENT if result.success else NotificationStatus.FAILED,
            error_detail=None if result.success else (result.error or "unknown error"),
            sent_at=self.clock(),
        )
