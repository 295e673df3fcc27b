"""
Repository classes for CRUD operations.
"""

import functools
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, Optional

from goldwatch.exceptions import PersistenceError
from .connection import Database
from .models import (
    Alert,
    ChannelKind,
    ChannelTarget,
    Investment,
    NotificationRecord,
    NotificationStatus,
    PriceSnapshot,
    build_condition,
)

logger = logging.getLogger(__name__)


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotRepository:
    """Append-only storage for price snapshots."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, snapshot: PriceSnapshot) -> PriceSnapshot:
        """Insert a snapshot and return it with its row id."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO gold_prices
            (date, buy_price, sell_price, price_per_gram, high_price, low_price,
             source, currency, unit)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.timestamp.isoformat(),
                snapshot.buy_price,
                snapshot.sell_price,
                snapshot.price_per_gram,
                snapshot.high_price,
                snapshot.low_price,
                snapshot.source,
                snapshot.currency,
                snapshot.unit,
            ),
        )
        self.db.connection.commit()
        return PriceSnapshot(
            id=cursor.lastrowid,
            timestamp=snapshot.timestamp,
            buy_price=snapshot.buy_price,
            sell_price=snapshot.sell_price,
            price_per_gram=snapshot.price_per_gram,
            high_price=snapshot.high_price,
            low_price=snapshot.low_price,
            source=snapshot.source,
            currency=snapshot.currency,
            unit=snapshot.unit,
        )

    def latest(self) -> Optional[PriceSnapshot]:
        """Most recent snapshot."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM gold_prices ORDER BY date DESC, id DESC LIMIT 1")
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_snapshot(row)

    def since(self, cutoff: datetime) -> list[PriceSnapshot]:
        """Snapshots at or after cutoff, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM gold_prices
            WHERE date >= ?
            ORDER BY date DESC, id DESC
            """,
            (cutoff.isoformat(),),
        )
        return [self._row_to_snapshot(row) for row in cursor.fetchall()]

    def find(self, timestamp: datetime, source: str) -> Optional[PriceSnapshot]:
        """The stored reading taken at ``timestamp`` from ``source``, if any."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM gold_prices WHERE date = ? AND source = ? ORDER BY id LIMIT 1",
            (timestamp.isoformat(), source),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_snapshot(row)

    def recent(self, limit: int) -> list[PriceSnapshot]:
        """Latest snapshots, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM gold_prices ORDER BY date DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_snapshot(row) for row in cursor.fetchall()]

    def _row_to_snapshot(self, row) -> PriceSnapshot:
        """Convert database row to PriceSnapshot."""
        return PriceSnapshot(
            id=row["id"],
            timestamp=datetime.fromisoformat(row["date"]),
            buy_price=row["buy_price"],
            sell_price=row["sell_price"],
            price_per_gram=row["price_per_gram"],
            high_price=row["high_price"],
            low_price=row["low_price"],
            source=row["source"],
            currency=row["currency"],
            unit=row["unit"],
        )


class AlertRepository:
    """CRUD operations for price alerts."""

    def __init__(self, db: Database, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or _utc_now

    def create(self, alert: Alert) -> Alert:
        """Create a new alert."""
        if alert.created_at is None:
            alert.created_at = self.clock()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO price_alerts
            (alert_type, target_price, daily_time, telegram_chat_id, phone_number,
             frequency_hours, active, created_at, last_triggered)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._alert_values(alert),
        )
        self.db.connection.commit()
        alert.id = cursor.lastrowid
        return alert

    def get_by_id(self, alert_id: int) -> Optional[Alert]:
        """Get alert by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM price_alerts WHERE id = ?", (alert_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_alert(row)

    def list_all(self) -> list[Alert]:
        """All alerts, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM price_alerts ORDER BY created_at DESC, id DESC")
        return [self._row_to_alert(row) for row in cursor.fetchall()]

    def list_active(self) -> list[Alert]:
        """Only active alerts, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM price_alerts
            WHERE active = 1
            ORDER BY created_at DESC, id DESC
            """
        )
        return [self._row_to_alert(row) for row in cursor.fetchall()]

    def update(self, alert: Alert) -> None:
        """
        Overwrite the user-editable fields of an alert.

        created_at and last_triggered are left alone; last_triggered is only
        written by update_last_triggered.
        """
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE price_alerts
            SET alert_type = ?, target_price = ?, daily_time = ?,
                telegram_chat_id = ?, phone_number = ?, frequency_hours = ?,
                active = ?
            WHERE id = ?
            """,
            (*self._editable_values(alert), alert.id),
        )
        self.db.connection.commit()

    def update_last_triggered(self, alert_id: int, when: datetime) -> None:
        """Record when an alert was last dispatched."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE price_alerts SET last_triggered = ? WHERE id = ?",
            (when.isoformat(), alert_id),
        )
        self.db.connection.commit()

    def delete(self, alert_id: int) -> bool:
        """Delete an alert. Returns False if it did not exist."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM price_alerts WHERE id = ?", (alert_id,))
        self.db.connection.commit()
        return cursor.rowcount > 0

    def _editable_values(self, alert: Alert) -> tuple:
        return (
            alert.type.value,
            alert.target_price,
            alert.daily_time,
            alert.destination_for(ChannelKind.TELEGRAM),
            alert.destination_for(ChannelKind.WHATSAPP),
            alert.frequency_hours,
            1 if alert.active else 0,
        )

    def _alert_values(self, alert: Alert) -> tuple:
        return (
            *self._editable_values(alert),
            alert.created_at.isoformat() if alert.created_at else None,
            alert.last_triggered_at.isoformat() if alert.last_triggered_at else None,
        )

    def _row_to_alert(self, row) -> Alert:
        """Convert database row to Alert."""
        channels = []
        if row["telegram_chat_id"]:
            channels.append(ChannelTarget(ChannelKind.TELEGRAM, row["telegram_chat_id"]))
        if row["phone_number"]:
            channels.append(ChannelTarget(ChannelKind.WHATSAPP, row["phone_number"]))

        return Alert(
            id=row["id"],
            condition=build_condition(
                row["alert_type"],
                target_price=row["target_price"],
                daily_time=row["daily_time"],
            ),
            channels=channels,
            frequency_hours=row["frequency_hours"],
            active=bool(row["active"]),
            created_at=_dt(row["created_at"]),
            last_triggered_at=_dt(row["last_triggered"]),
        )


class NotificationLogRepository:
    """Append-only log of send attempts."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, record: NotificationRecord) -> NotificationRecord:
        """Insert a log entry."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO notification_logs
            (alert_id, channel, message, status, error_message, sent_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.alert_id,
                record.channel,
                record.message,
                record.status.value,
                record.error_detail,
                record.sent_at.isoformat(),
            ),
        )
        self.db.connection.commit()
        return NotificationRecord(
            id=cursor.lastrowid,
            alert_id=record.alert_id,
            channel=record.channel,
            message=record.message,
            status=record.status,
            error_detail=record.error_detail,
            sent_at=record.sent_at,
        )

    def recent(self, limit: int = 100) -> list[NotificationRecord]:
        """Most recent log entries, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM notification_logs ORDER BY sent_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def _row_to_record(self, row) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            alert_id=row["alert_id"],
            channel=row["channel"],
            message=row["message"],
            status=NotificationStatus(row["status"]),
            error_detail=row["error_message"],
            sent_at=datetime.fromisoformat(row["sent_at"]),
        )


class InvestmentRepository:
    """CRUD operations for gold investments."""

    COLUMNS = ("purchase_date", "weight", "purchase_price", "purity", "notes")

    def __init__(self, db: Database, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or _utc_now

    def create(self, investment: Investment) -> Investment:
        """Create a new investment."""
        if investment.created_at is None:
            investment.created_at = self.clock()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO investments
            (purchase_date, weight, purchase_price, purity, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (*self._values(investment), investment.created_at.isoformat()),
        )
        self.db.connection.commit()
        investment.id = cursor.lastrowid
        return investment

    def get_by_id(self, investment_id: int) -> Optional[Investment]:
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM investments WHERE id = ?", (investment_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_investment(row)

    def list_all(self) -> list[Investment]:
        """All investments, most recent purchase first."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM investments ORDER BY purchase_date DESC, id DESC")
        return [self._row_to_investment(row) for row in cursor.fetchall()]

    def update(self, investment: Investment) -> bool:
        """Overwrite the editable fields. Returns False if it did not exist."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE investments
            SET purchase_date = ?, weight = ?, purchase_price = ?, purity = ?, notes = ?
            WHERE id = ?
            """,
            (*self._values(investment), investment.id),
        )
        self.db.connection.commit()
        return cursor.rowcount > 0

    def delete(self, investment_id: int) -> bool:
        """Delete an investment. Returns False if it did not exist."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM investments WHERE id = ?", (investment_id,))
        self.db.connection.commit()
        return cursor.rowcount > 0

    def _values(self, investment: Investment) -> tuple:
        return (
            investment.purchase_date.isoformat(),
            investment.weight,
            investment.purchase_price,
            investment.purity,
            investment.notes,
        )

    def _row_to_investment(self, row) -> Investment:
        return Investment(
            id=row["id"],
            purchase_date=datetime.fromisoformat(row["purchase_date"]),
            weight=row["weight"],
            purchase_price=row["purchase_price"],
            purity=row["purity"],
            notes=row["notes"],
            created_at=_dt(row["created_at"]),
        )

def _guarded(method):
    """Serialize access to the shared connection and wrap sqlite errors."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.db.lock:
            try:
                return method(self, *args, **kwargs)
            except sqlite3.Error as e:
                logger.error(f"Storage error in {method.__name__}: {e}")
                raise PersistenceError(f"{method.__name__} failed: {e}", cause=e) from e

    return wrapper


class PersistenceGateway:
    """
    Storage contract used by the pipeline, the dispatcher and the API.

    Every call holds the database lock, and any sqlite3 error surfaces as
    PersistenceError.
    """

    def __init__(self, db: Database, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            db: Initialized database
            clock: Stamps new alerts and investments that arrive without created_at;
                UTC when omitted
        """
        self.db = db
        self.snapshots = SnapshotRepository(db)
        self.alerts = AlertRepository(db, clock)
        self.investments = InvestmentRepository(db, clock)
        self.logs = NotificationLogRepository(db)

    # Snapshots

    @_guarded
    def save_snapshot(self, snapshot: PriceSnapshot) -> PriceSnapshot:
        return self.snapshots.create(snapshot)

    @_guarded
    def latest_snapshot(self) -> Optional[PriceSnapshot]:
        return self.snapshots.latest()

    @_guarded
    def snapshots_since(self, cutoff: datetime) -> list[PriceSnapshot]:
        return self.snapshots.since(cutoff)

    @_guarded
    def find_snapshot(self, timestamp: datetime, source: str) -> Optional[PriceSnapshot]:
        return self.snapshots.find(timestamp, source)

    @_guarded
    def recent_snapshots(self, limit: int) -> list[PriceSnapshot]:
        return self.snapshots.recent(limit)

    # Alerts

    @_guarded
    def active_alerts(self) -> list[Alert]:
        return self.alerts.list_active()

    @_guarded
    def all_alerts(self) -> list[Alert]:
        return self.alerts.list_all()

    @_guarded
    def get_alert(self, alert_id: int) -> Optional[Alert]:
        return self.alerts.get_by_id(alert_id)

    @_guarded
    def create_alert(self, alert: Alert) -> Alert:
        return self.alerts.create(alert)

    @_guarded
    def update_alert(self, alert: Alert) -> None:
        self.alerts.update(alert)

    @_guarded
    def delete_alert(self, alert_id: int) -> bool:
        return self.alerts.delete(alert_id)

    @_guarded
    def update_last_triggered(self, alert_id: int, when: datetime) -> None:
        self.alerts.update_last_triggered(alert_id, when)

    # Notification logs

    @_guarded
    def insert_notification_log(self, record: NotificationRecord) -> NotificationRecord:
        return self.logs.create(record)

    @_guarded
    def notification_logs(self, limit: int = 100) -> list[NotificationRecord]:
        return self.logs.recent(limit)

    # Investments

    @_guarded
    def list_investments(self) -> list[Investment]:
        return self.investments.list_all()

    @_guarded
    def get_investment(self, investment_id: int) -> Optional[Investment]:
        return self.investments.get_by_id(investment_id)

    @_guarded
    def create_investment(self, investment: Investment) -> Investment:
        return self.investments.create(investment)

    @_guarded
    def update_investment(self, investment: Investment) -> bool:
        return self.investments.update(investment)

    @_guarded
    def delete_investment(self, investment_id: int) -> bool:
        return self.investments.delete(investment_id)
