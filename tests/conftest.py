"""
Pytest configuration and shared fixtures.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from goldwatch.data.sources import PriceSource, RawQuote
from goldwatch.database.connection import Database
from goldwatch.database.models import (
    Alert,
    ChannelKind,
    ChannelTarget,
    PriceSnapshot,
    build_condition,
)
from goldwatch.database.repository import PersistenceGateway
from goldwatch.exceptions import SourceFetchError
from goldwatch.notifiers.base import NotificationChannel, NotificationResult

WIB = timezone(timedelta(hours=7), "WIB")


class FakeClock:
    """Settable clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSource(PriceSource):
    """Source returning canned quotes or failures, counting calls."""

    def __init__(
        self,
        name: str,
        quote: Optional[RawQuote] = None,
        error: Optional[str] = None,
        gate: Optional[threading.Event] = None,
    ):
        super().__init__()
        self.name = name
        self.quote = quote
        self.error = error
        self.gate = gate
        self.calls = 0

    def fetch_quote(self, timeout: float) -> RawQuote:
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise SourceFetchError(self.name, self.error)
        return self.quote


class FakeChannel(NotificationChannel):
    """Channel that records messages and returns a fixed outcome."""

    def __init__(self, kind: ChannelKind, error: Optional[str] = None, raises=None):
        self.kind = kind
        self.error = error
        self.raises = raises
        self.sent: list[tuple[str, str]] = []

    def send(self, destination: str, message: str) -> NotificationResult:
        if self.raises is not None:
            raise self.raises
        self.sent.append((destination, message))
        if self.error:
            return NotificationResult.failed(self.name, self.error)
        return NotificationResult.sent(self.name)


@pytest.fixture
def clock():
    """Clock fixed at 10:00 WIB."""
    return FakeClock(datetime(2026, 10, 19, 10, 0, tzinfo=WIB))


@pytest.fixture
def db():
    """Initialized in-memory database."""
    database = Database(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def gateway(db, clock):
    return PersistenceGateway(db, clock=clock)


@pytest.fixture
def make_snapshot(clock):
    """Factory for valid IDR snapshots."""

    def _make(
        price_per_gram: float = 1_058_000,
        buy_price: Optional[float] = None,
        sell_price: float = 967_000,
        source: str = "emasku",
        timestamp: Optional[datetime] = None,
    ) -> PriceSnapshot:
        return PriceSnapshot(
            timestamp=timestamp or clock(),
            buy_price=price_per_gram if buy_price is None else buy_price,
            sell_price=sell_price,
            price_per_gram=price_per_gram,
            source=source,
        )

    return _make


@pytest.fixture
def make_alert():
    """Factory for alerts with a Telegram channel by default."""

    def _make(
        alert_type: str = "increase",
        target_price: Optional[float] = 1_050_000,
        daily_time: Optional[str] = None,
        channels: Optional[list[ChannelTarget]] = None,
        frequency_hours: float = 24,
        active: bool = True,
        last_triggered_at: Optional[datetime] = None,
        id: Optional[int] = None,
    ) -> Alert:
        if alert_type == "daily":
            target_price = None
        return Alert(
            id=id,
            condition=build_condition(alert_type, target_price, daily_time),
            channels=channels or [ChannelTarget(ChannelKind.TELEGRAM, "12345")],
            frequency_hours=frequency_hours,
            active=active,
            last_triggered_at=last_triggered_at,
        )

    return _make


@pytest.fixture
def quote():
    """Raw IDR quote for 1 gram."""
    return RawQuote(price_per_unit=1_058_000, buy_price=1_058_000, sell_price=967_000)


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def fake_channel():
    return FakeChannel
