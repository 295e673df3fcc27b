"""
HTTP API tests.

Uses FastAPI TestClient over in-memory storage, fake sources and channels.
"""

import pytest
from datetime import timedelta
from unittest.mock import patch
from fastapi.testclient import TestClient

from goldwatch.api.app import create_app
from goldwatch.api.deps import AppState
from goldwatch.app import GoldWatchApp
from goldwatch.config import build_config
from goldwatch.data.aggregator import FallbackAggregator
from goldwatch.data.cache import PriceCache
from goldwatch.database.models import ChannelKind, NotificationRecord, NotificationStatus
from goldwatch.notifiers.dispatcher import NotificationDispatcher
from goldwatch.notifiers.whatsapp import WhatsAppChannel, WhatsAppSession


@pytest.fixture
def emasku(fake_source, quote):
    return fake_source("emasku", quote=quote)


@pytest.fixture
def pegadaian(fake_source, quote):
    return fake_source("pegadaian", quote=quote)


@pytest.fixture
def app_state(emasku, pegadaian, fake_channel, gateway, clock):
    channels = {
        ChannelKind.TELEGRAM: fake_channel(ChannelKind.TELEGRAM),
        ChannelKind.WHATSAPP: WhatsAppChannel(WhatsAppSession("http://wa.example")),
    }
    aggregator = FallbackAggregator(
        sources=[emasku, pegadaian],
        cache=PriceCache(clock),
        clock=clock,
        timeout=5,
    )
    pipeline = GoldWatchApp(
        gateway=gateway,
        aggregator=aggregator,
        dispatcher=NotificationDispatcher(channels, gateway, clock),
        clock=clock,
    )
    yield AppState(pipeline=pipeline, config=build_config({}), channels=channels)
    aggregator.close()


@pytest.fixture
def client(app_state):
    with TestClient(create_app(app_state)) as c:
        yield c


class TestHealthEndpoint:
    """API health check."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["sources"] == ["emasku", "pegadaian"]
        assert data["latestPriceAt"] is None
        assert data["telegramReady"] is True
        assert data["whatsappState"] == "unauthenticated"


class TestCurrentPrice:
    """GET /api/gold-prices/current."""

    def test_fetches_when_empty(self, client, emasku):
        response = client.get("/api/gold-prices/current")
        assert response.status_code == 200
        data = response.json()
        assert data["pricePerGram"] == 1_058_000
        assert data["buyPrice"] == 1_058_000
        assert data["sellPrice"] == 967_000
        assert data["source"] == "emasku"
        assert data["priceChange"] == 0
        assert emasku.calls == 1

    def test_includes_day_over_day_change(self, client, gateway, make_snapshot, clock):
        gateway.save_snapshot(
            make_snapshot(price_per_gram=1_040_000, timestamp=clock() - timedelta(days=1))
        )
        gateway.save_snapshot(make_snapshot(timestamp=clock() - timedelta(minutes=30)))

        data = client.get("/api/gold-prices/current").json()

        assert data["priceChange"] == 18_000
        assert data["buyPriceChange"] == 18_000

    def test_named_source(self, client, emasku):
        data = client.get("/api/gold-prices/current", params={"source": "pegadaian"}).json()
        assert data["source"] == "pegadaian"
        assert emasku.calls == 0

    def test_unknown_source(self, client):
        response = client.get("/api/gold-prices/current", params={"source": "antam"})
        assert response.status_code == 400

    def test_all_sources_fail(self, client, emasku, pegadaian):
        emasku.error = "price table not found"
        pegadaian.error = "HTTP 503"

        response = client.get("/api/gold-prices/current", params={"refresh": "true"})

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "AggregateFailureError"
        assert data["sources"] == {
            "emasku": "price table not found",
            "pegadaian": "HTTP 503",
        }


class TestHistoryEndpoints:
    """History, chart and recent-changes views."""

    @pytest.fixture
    def stored(self, gateway, make_snapshot, clock):
        for hours, price in ((0, 1_060_000), (2, 1_050_000), (30, 1_040_000)):
            gateway.save_snapshot(
                make_snapshot(
                    price_per_gram=price,
                    sell_price=price - 90_000,
                    timestamp=clock() - timedelta(hours=hours),
                )
            )

    def test_history(self, client, stored):
        data = client.get("/api/gold-prices/history", params={"timeframe": "1w"}).json()
        assert [item["pricePerGram"] for item in data] == [1_060_000, 1_050_000, 1_040_000]
        assert data[0]["dailyChange"] == 10_000
        assert data[-1]["dailyChange"] == 0

    def test_history_unknown_timeframe(self, client, stored):
        data = client.get("/api/gold-prices/history", params={"timeframe": "10y"}).json()
        assert len(data) == 3

    def test_chart_day(self, client, stored):
        data = client.get("/api/gold-prices/chart", params={"timeframe": "1d"}).json()
        assert [p["price"] for p in data] == [1_050_000, 1_060_000]
        assert data[0]["label"] == "08:00"

    def test_recent_changes(self, client, stored):
        data = client.get("/api/gold-prices/recent-changes", params={"limit": 2}).json()
        assert len(data) == 2
        assert data[0]["type"] in ("Buy Price", "Sell Price")
        assert data[0]["change"] == 10_000


class TestAlertEndpoints:
    """Alert CRUD."""

    def test_create_increase_alert(self, client):
        response = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 1_050_000,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["id"] is not None
        assert data["alertType"] == "increase"
        assert data["targetPrice"] == 1_050_000
        assert data["telegramEnabled"] is True
        assert data["whatsappEnabled"] is False
        assert data["frequencyHours"] == 24
        assert data["lastTriggered"] is None

    def test_create_daily_alert_default_frequency(self, client):
        response = client.post(
            "/api/alerts",
            json={
                "alertType": "daily",
                "dailyTime": "20:00",
                "whatsappEnabled": True,
                "phoneNumber": "+62 812-3456-789",
            },
        )
        assert response.status_code == 201
        assert response.json()["frequencyHours"] == 1

    def test_create_rejects_daily_time_on_price_alert(self, client):
        response = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 1_050_000,
                "dailyTime": "20:00",
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        )
        assert response.status_code == 400
        assert "daily_time" in response.json()["detail"]

    def test_create_requires_channel(self, client):
        response = client.post(
            "/api/alerts", json={"alertType": "decrease", "targetPrice": 900_000}
        )
        assert response.status_code == 400

    def test_create_requires_destination(self, client):
        response = client.post(
            "/api/alerts",
            json={"alertType": "decrease", "targetPrice": 900_000, "telegramEnabled": True},
        )
        assert response.status_code == 400

    def test_create_rejects_non_positive_target(self, client):
        response = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 0,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        )
        assert response.status_code == 422

    def test_list_get_and_delete(self, client):
        created = client.post(
            "/api/alerts",
            json={
                "alertType": "decrease",
                "targetPrice": 900_000,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        ).json()

        assert [a["id"] for a in client.get("/api/alerts").json()] == [created["id"]]
        assert client.get(f"/api/alerts/{created['id']}").json()["targetPrice"] == 900_000

        assert client.delete(f"/api/alerts/{created['id']}").status_code == 204
        assert client.get(f"/api/alerts/{created['id']}").status_code == 404
        assert client.delete(f"/api/alerts/{created['id']}").status_code == 404

    def test_update_merges_fields(self, client):
        created = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 1_050_000,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        ).json()

        response = client.put(
            f"/api/alerts/{created['id']}", json={"targetPrice": 1_100_000, "active": False}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["targetPrice"] == 1_100_000
        assert data["active"] is False
        assert data["telegramChatId"] == "12345"
        assert data["alertType"] == "increase"

    def test_update_keeps_concurrent_trigger_stamp(self, client, gateway, clock):
        """Should keep a lastTriggered stamp written while the PUT was in progress."""
        created = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 1_050_000,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        ).json()
        read_alert = gateway.get_alert

        def read_then_dispatch(alert_id):
            alert = read_alert(alert_id)
            gateway.update_last_triggered(alert_id, clock())
            return alert

        with patch.object(gateway, "get_alert", side_effect=read_then_dispatch):
            response = client.put(
                f"/api/alerts/{created['id']}", json={"targetPrice": 1_100_000}
            )

        assert response.status_code == 200
        assert response.json()["lastTriggered"] is not None
        stored = gateway.get_alert(created["id"])
        assert stored.last_triggered_at == clock()
        assert stored.target_price == 1_100_000

    def test_update_switch_to_daily(self, client):
        created = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 1_050_000,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        ).json()

        response = client.put(
            f"/api/alerts/{created['id']}",
            json={"alertType": "daily", "dailyTime": "07:00"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["alertType"] == "daily"
        assert data["targetPrice"] is None
        assert data["dailyTime"] == "07:00"

    def test_update_invalid_variant(self, client):
        created = client.post(
            "/api/alerts",
            json={
                "alertType": "increase",
                "targetPrice": 1_050_000,
                "telegramEnabled": True,
                "telegramChatId": "12345",
            },
        ).json()

        response = client.put(f"/api/alerts/{created['id']}", json={"alertType": "daily"})

        assert response.status_code == 400

    def test_update_missing(self, client):
        response = client.put("/api/alerts/999", json={"active": False})
        assert response.status_code == 404


class TestNotificationLogs:
    """GET /api/notification-logs."""

    def test_lists_recent_logs(self, client, gateway, clock):
        gateway.insert_notification_log(
            NotificationRecord(
                channel="whatsapp",
                message="Gold",
                status=NotificationStatus.FAILED,
                error_detail="not ready: session unauthenticated",
                sent_at=clock(),
            )
        )

        data = client.get("/api/notification-logs", params={"limit": 10}).json()

        assert len(data) == 1
        assert data[0]["status"] == "failed"
        assert data[0]["errorMessage"] == "not ready: session unauthenticated"


class TestInvestmentEndpoints:
    """Investment CRUD and portfolio summary."""

    @pytest.fixture
    def created(self, client):
        return client.post(
            "/api/investments",
            json={
                "purchaseDate": "2026-03-01T09:00:00+07:00",
                "weight": 5,
                "purchasePrice": 4_800_000,
                "notes": "Antam bar",
            },
        ).json()

    def test_create(self, created):
        assert created["id"] is not None
        assert created["weight"] == 5
        assert created["purity"] == 0.999
        assert created["notes"] == "Antam bar"
        assert created["createdAt"] is not None

    def test_create_rejects_non_positive_weight(self, client):
        response = client.post(
            "/api/investments",
            json={
                "purchaseDate": "2026-03-01T09:00:00+07:00",
                "weight": 0,
                "purchasePrice": 4_800_000,
            },
        )
        assert response.status_code == 422

    def test_list_get_and_delete(self, client, created):
        assert [i["id"] for i in client.get("/api/investments").json()] == [created["id"]]
        assert client.get(f"/api/investments/{created['id']}").json()["weight"] == 5

        assert client.delete(f"/api/investments/{created['id']}").status_code == 204
        assert client.get(f"/api/investments/{created['id']}").status_code == 404
        assert client.delete(f"/api/investments/{created['id']}").status_code == 404

    def test_update_merges_fields(self, client, created):
        response = client.put(
            f"/api/investments/{created['id']}", json={"weight": 10, "notes": None}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["weight"] == 10
        assert data["notes"] is None
        assert data["purchasePrice"] == 4_800_000
        assert data["createdAt"] == created["createdAt"]

    def test_update_invalid_value(self, client, created):
        response = client.put(f"/api/investments/{created['id']}", json={"weight": None})
        assert response.status_code == 400

    def test_update_missing(self, client):
        response = client.put("/api/investments/999", json={"weight": 1})
        assert response.status_code == 404

    def test_summary(self, client, created, emasku):
        data = client.get("/api/investments/summary").json()

        assert data["totalInvestment"] == 4_800_000
        assert data["totalWeight"] == 5
        assert data["currentValue"] == 5_290_000
        assert data["totalProfit"] == 490_000
        assert data["profitIfSold"] == 5 * 967_000 - 4_800_000
        assert data["pricePerGram"] == 1_058_000
        assert [i["id"] for i in data["items"]] == [created["id"]]
        assert data["items"][0]["profit"] == 490_000

    def test_summary_without_investments_skips_fetch(self, client, emasku):
        data = client.get("/api/investments/summary").json()

        assert data["totalInvestment"] == 0
        assert data["items"] == []
        assert data["pricePerGram"] is None
        assert emasku.calls == 0
