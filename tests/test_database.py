"""
Database tests.
Tests for schema creation, repositories and the persistence gateway.
"""

import sqlite3
import pytest
from datetime import timedelta

from goldwatch.database.connection import Database
from goldwatch.database.models import (
    AlertType,
    ChannelKind,
    ChannelTarget,
    NotificationRecord,
    Investment,
    NotificationStatus,
)
from goldwatch.database.repository import PersistenceGateway
from goldwatch.exceptions import InvestmentValidationError, PersistenceError


class TestDatabase:
    """Test database connection and schema."""

    def test_creates_tables(self, db: Database):
        """Should create every table."""
        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row["name"] for row in cursor.fetchall()}
        assert {"gold_prices", "price_alerts", "notification_logs", "investments"} <= tables

    def test_initialize_is_idempotent(self, db: Database):
        db.initialize()
        db.initialize()

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "goldwatch.db"
        database = Database(str(path))
        database.initialize()
        database.close()
        assert path.exists()

    def test_closed_connection(self):
        database = Database(":memory:")
        database.close()
        with pytest.raises(sqlite3.ProgrammingError):
            database.connection


class TestSnapshots:
    """Test snapshot storage."""

    def test_save_assigns_id(self, gateway, make_snapshot):
        saved = gateway.save_snapshot(make_snapshot())
        assert saved.id is not None
        assert saved.price_per_gram == 1_058_000

    def test_latest(self, gateway, make_snapshot, clock):
        assert gateway.latest_snapshot() is None
        gateway.save_snapshot(make_snapshot(price_per_gram=1_000_000))
        gateway.save_snapshot(
            make_snapshot(price_per_gram=1_010_000, timestamp=clock() + timedelta(hours=1))
        )
        latest = gateway.latest_snapshot()
        assert latest.price_per_gram == 1_010_000
        assert latest.timestamp == clock() + timedelta(hours=1)

    def test_since_newest_first(self, gateway, make_snapshot, clock):
        for hours in (0, 1, 2, 3):
            gateway.save_snapshot(make_snapshot(timestamp=clock() - timedelta(hours=hours)))

        rows = gateway.snapshots_since(clock() - timedelta(hours=2))

        assert len(rows) == 3
        assert rows[0].timestamp > rows[1].timestamp > rows[2].timestamp

    def test_recent_limit(self, gateway, make_snapshot, clock):
        for hours in range(5):
            gateway.save_snapshot(make_snapshot(timestamp=clock() - timedelta(hours=hours)))
        assert len(gateway.recent_snapshots(2)) == 2

    def test_find_by_timestamp_and_source(self, gateway, make_snapshot, clock):
        saved = gateway.save_snapshot(make_snapshot())
        gateway.save_snapshot(make_snapshot(source="metals"))

        assert gateway.find_snapshot(clock(), "emasku").id == saved.id
        assert gateway.find_snapshot(clock() - timedelta(minutes=1), "emasku") is None
        assert gateway.find_snapshot(clock(), "pegadaian") is None

    def test_rejects_non_positive_price(self, gateway, make_snapshot):
        """Should surface constraint violations as PersistenceError."""
        with pytest.raises(PersistenceError):
            gateway.save_snapshot(make_snapshot(price_per_gram=-1, buy_price=1, sell_price=1))


class TestAlerts:
    """Test alert storage."""

    def test_create_and_get(self, gateway, make_alert):
        created = gateway.create_alert(make_alert())
        assert created.id is not None
        assert created.created_at is not None

        loaded = gateway.get_alert(created.id)
        assert loaded.type == AlertType.INCREASE
        assert loaded.target_price == 1_050_000
        assert loaded.destination_for(ChannelKind.TELEGRAM) == "12345"
        assert loaded.frequency_hours == 24
        assert loaded.last_triggered_at is None

    def test_daily_alert_round_trip(self, gateway, make_alert):
        created = gateway.create_alert(
            make_alert(
                alert_type="daily",
                daily_time="20:00",
                channels=[ChannelTarget(ChannelKind.WHATSAPP, "628123456789")],
                frequency_hours=1,
            )
        )
        loaded = gateway.get_alert(created.id)
        assert loaded.type == AlertType.DAILY
        assert loaded.daily_time == "20:00"
        assert loaded.target_price is None
        assert loaded.destination_for(ChannelKind.TELEGRAM) is None
        assert loaded.destination_for(ChannelKind.WHATSAPP) == "628123456789"

    def test_active_alerts(self, gateway, make_alert):
        gateway.create_alert(make_alert())
        gateway.create_alert(make_alert(active=False))

        assert len(gateway.all_alerts()) == 2
        active = gateway.active_alerts()
        assert len(active) == 1
        assert active[0].active is True

    def test_update(self, gateway, make_alert):
        alert = gateway.create_alert(make_alert())
        alert.active = False
        alert.frequency_hours = 6
        gateway.update_alert(alert)

        loaded = gateway.get_alert(alert.id)
        assert loaded.active is False
        assert loaded.frequency_hours == 6

    def test_update_keeps_trigger_stamp(self, gateway, make_alert, clock):
        """Should not roll back a stamp written after the alert was read."""
        alert = gateway.create_alert(make_alert())
        stale = gateway.get_alert(alert.id)

        gateway.update_last_triggered(alert.id, clock())
        stale.active = False
        gateway.update_alert(stale)

        loaded = gateway.get_alert(alert.id)
        assert loaded.last_triggered_at == clock()
        assert loaded.active is False

    def test_update_keeps_created_at(self, gateway, make_alert, clock):
        alert = gateway.create_alert(make_alert())
        alert.created_at = clock() + timedelta(days=3)
        gateway.update_alert(alert)

        assert gateway.get_alert(alert.id).created_at == clock()

    def test_created_at_is_timezone_aware(self, gateway, make_alert, clock):
        created = gateway.create_alert(make_alert())
        assert created.created_at == clock()
        assert gateway.get_alert(created.id).created_at.tzinfo is not None

    def test_default_clock_is_utc(self, db, make_alert):
        created = PersistenceGateway(db).create_alert(make_alert())
        assert created.created_at.utcoffset() == timedelta(0)

    def test_update_last_triggered(self, gateway, make_alert, clock):
        alert = gateway.create_alert(make_alert())
        gateway.update_last_triggered(alert.id, clock())
        assert gateway.get_alert(alert.id).last_triggered_at == clock()

    def test_delete(self, gateway, make_alert):
        alert = gateway.create_alert(make_alert())
        assert gateway.delete_alert(alert.id) is True
        assert gateway.get_alert(alert.id) is None
        assert gateway.delete_alert(alert.id) is False

    def test_get_missing(self, gateway):
        assert gateway.get_alert(999) is None


class TestNotificationLogs:
    """Test notification log storage."""

    def _record(self, clock, alert_id=None, status=NotificationStatus.SENT, error=None):
        return NotificationRecord(
            alert_id=alert_id,
            channel="telegram",
            message="Gold price alert",
            status=status,
            error_detail=error,
            sent_at=clock(),
        )

    def test_insert_and_list(self, gateway, clock):
        gateway.insert_notification_log(self._record(clock))
        clock.advance(minutes=1)
        gateway.insert_notification_log(
            self._record(clock, status=NotificationStatus.FAILED, error="not ready")
        )

        logs = gateway.notification_logs()
        assert len(logs) == 2
        assert logs[0].status == NotificationStatus.FAILED
        assert logs[0].error_detail == "not ready"
        assert logs[1].status == NotificationStatus.SENT

    def test_limit(self, gateway, clock):
        for _ in range(3):
            gateway.insert_notification_log(self._record(clock))
        assert len(gateway.notification_logs(limit=2)) == 2

    def test_deleting_alert_keeps_logs(self, gateway, make_alert, clock):
        """Should detach logs from a deleted alert instead of dropping them."""
        alert = gateway.create_alert(make_alert())
        gateway.insert_notification_log(self._record(clock, alert_id=alert.id))

        gateway.delete_alert(alert.id)

        logs = gateway.notification_logs()
        assert len(logs) == 1
        assert logs[0].alert_id is None


class TestInvestments:
    """Test investment repository."""

    @pytest.fixture
    def purchase(self, clock):
        def _make(days_ago=30, weight=5.0, price=4_800_000, **kwargs):
            return Investment(
                purchase_date=clock() - timedelta(days=days_ago),
                weight=weight,
                purchase_price=price,
                **kwargs,
            )

        return _make

    def test_create_and_get(self, gateway, purchase, clock):
        created = gateway.create_investment(purchase(notes="Antam bar"))

        assert created.id is not None
        assert created.created_at == clock()
        fetched = gateway.get_investment(created.id)
        assert fetched.weight == 5.0
        assert fetched.purchase_price == 4_800_000
        assert fetched.purity == 0.999
        assert fetched.notes == "Antam bar"
        assert fetched.purchase_date == clock() - timedelta(days=30)

    def test_list_most_recent_purchase_first(self, gateway, purchase):
        old = gateway.create_investment(purchase(days_ago=90))
        new = gateway.create_investment(purchase(days_ago=2))

        assert [i.id for i in gateway.list_investments()] == [new.id, old.id]

    def test_update(self, gateway, purchase, clock):
        created = gateway.create_investment(purchase())
        clock.advance(hours=1)
        created.weight = 10.0
        created.notes = "topped up"

        assert gateway.update_investment(created) is True
        fetched = gateway.get_investment(created.id)
        assert fetched.weight == 10.0
        assert fetched.notes == "topped up"
        assert fetched.created_at == clock() - timedelta(hours=1)

    def test_update_missing(self, gateway, purchase):
        missing = purchase()
        missing.id = 999
        assert gateway.update_investment(missing) is False

    def test_delete(self, gateway, purchase):
        created = gateway.create_investment(purchase())
        assert gateway.delete_investment(created.id) is True
        assert gateway.get_investment(created.id) is None
        assert gateway.delete_investment(created.id) is False

    @pytest.mark.parametrize(
        "kwargs",
        [{"weight": 0}, {"price": -1}, {"purity": 1.5}, {"purity": 0}],
    )
    def test_rejects_invalid(self, purchase, kwargs):
        with pytest.raises(InvestmentValidationError):
            purchase(**kwargs)


class TestPersistenceGateway:
    """Test storage error handling."""

    def test_wraps_sqlite_errors(self, db, gateway):
        db.close()
        with pytest.raises(PersistenceError) as exc_info:
            gateway.latest_snapshot()
        assert isinstance(exc_info.value.cause, sqlite3.Error)
