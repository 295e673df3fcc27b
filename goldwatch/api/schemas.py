"""Pydantic request/response models for the HTTP API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from goldwatch.database.models import (
    Alert,
    ChannelKind,
    ChartPoint,
    DailyDelta,
    HistoryPoint,
    Investment,
    InvestmentValuation,
    NotificationRecord,
    PortfolioSummary,
    PriceChange,
    PriceSnapshot,
)


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either form on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Prices --


class SnapshotResponse(CamelModel):
    id: Optional[int] = None
    date: datetime
    buy_price: float
    sell_price: float
    price_per_gram: float
    high_price: Optional[float] = None
    low_price: Optional[float] = None
    source: str
    currency: str
    unit: str

    @classmethod
    def from_snapshot(cls, snapshot: PriceSnapshot, **extra) -> "SnapshotResponse":
        return cls(
            id=snapshot.id,
            date=snapshot.timestamp,
            buy_price=snapshot.buy_price,
            sell_price=snapshot.sell_price,
            price_per_gram=snapshot.price_per_gram,
            high_price=snapshot.high_price,
            low_price=snapshot.low_price,
            source=snapshot.source,
            currency=snapshot.currency,
            unit=snapshot.unit,
            **extra,
        )


class CurrentPriceResponse(SnapshotResponse):
    price_change: float = 0.0
    buy_price_change: float = 0.0
    sell_price_change: float = 0.0

    @classmethod
    def build(cls, snapshot: PriceSnapshot, delta: DailyDelta) -> "CurrentPriceResponse":
        return cls.from_snapshot(
            snapshot,
            price_change=delta.price_change,
            buy_price_change=delta.buy_price_change,
            sell_price_change=delta.sell_price_change,
        )


class HistoryItemResponse(SnapshotResponse):
    daily_change: float = 0.0
    change_percent: float = 0.0

    @classmethod
    def from_point(cls, point: HistoryPoint) -> "HistoryItemResponse":
        return cls.from_snapshot(
            point.snapshot,
            daily_change=point.daily_change,
            change_percent=point.change_percent,
        )


class ChartPointResponse(CamelModel):
    label: str
    price: float

    @classmethod
    def from_point(cls, point: ChartPoint) -> "ChartPointResponse":
        return cls(label=point.label, price=point.price)


class PriceChangeResponse(CamelModel):
    id: str
    date: datetime
    price: float
    change: float
    type: str

    @classmethod
    def from_change(cls, change: PriceChange) -> "PriceChangeResponse":
        return cls(
            id=change.id,
            date=change.date,
            price=change.price,
            change=change.change,
            type=change.type,
        )


# -- Alerts --


class AlertFields(CamelModel):
    alert_type: Optional[str] = None
    target_price: Optional[float] = Field(None, gt=0)
    daily_time: Optional[str] = None
    telegram_enabled: Optional[bool] = None
    telegram_chat_id: Optional[str] = None
    whatsapp_enabled: Optional[bool] = None
    phone_number: Optional[str] = None
    frequency_hours: Optional[float] = Field(None, ge=0)
    active: Optional[bool] = None


class AlertCreateRequest(AlertFields):
    alert_type: str
    telegram_enabled: bool = False
    whatsapp_enabled: bool = False
    active: bool = True


class AlertUpdateRequest(AlertFields):
    pass


class AlertResponse(CamelModel):
    id: int
    alert_type: str
    target_price: Optional[float] = None
    daily_time: Optional[str] = None
    telegram_enabled: bool
    telegram_chat_id: Optional[str] = None
    whatsapp_enabled: bool
    phone_number: Optional[str] = None
    frequency_hours: float
    active: bool
    created_at: Optional[datetime] = None
    last_triggered: Optional[datetime] = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        chat_id = alert.destination_for(ChannelKind.TELEGRAM)
        phone = alert.destination_for(ChannelKind.WHATSAPP)
        return cls(
            id=alert.id,
            alert_type=alert.type.value,
            target_price=alert.target_price,
            daily_time=alert.daily_time,
            telegram_enabled=chat_id is not None,
            telegram_chat_id=chat_id,
            whatsapp_enabled=phone is not None,
            phone_number=phone,
            frequency_hours=alert.frequency_hours,
            active=alert.active,
            created_at=alert.created_at,
            last_triggered=alert.last_triggered_at,
        )


# -- Investments --


class InvestmentFields(CamelModel):
    purchase_date: Optional[datetime] = None
    weight: Optional[float] = Field(None, gt=0)
    purchase_price: Optional[float] = Field(None, gt=0)
    purity: Optional[float] = Field(None, gt=0, le=1)
    notes: Optional[str] = None


class InvestmentCreateRequest(InvestmentFields):
    purchase_date: datetime
    weight: float = Field(gt=0)
    purchase_price: float = Field(gt=0)
    purity: float = Field(0.999, gt=0, le=1)


class InvestmentUpdateRequest(InvestmentFields):
    pass


class InvestmentResponse(CamelModel):
    id: int
    purchase_date: datetime
    weight: float
    purchase_price: float
    purity: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_investment(cls, investment: Investment) -> "InvestmentResponse":
        return cls(
            id=investment.id,
            purchase_date=investment.purchase_date,
            weight=investment.weight,
            purchase_price=investment.purchase_price,
            purity=investment.purity,
            notes=investment.notes,
            created_at=investment.created_at,
        )


class InvestmentValuationResponse(InvestmentResponse):
    current_value: float
    profit: float
    profit_percentage: float

    @classmethod
    def from_valuation(cls, valuation: InvestmentValuation) -> "InvestmentValuationResponse":
        base = InvestmentResponse.from_investment(valuation.investment)
        return cls(
            **base.model_dump(),
            current_value=valuation.current_value,
            profit=valuation.profit,
            profit_percentage=valuation.profit_percentage,
        )


class PortfolioSummaryResponse(CamelModel):
    total_investment: float
    total_weight: float
    current_value: float
    total_profit: float
    profit_percentage: float
    profit_if_sold: float
    price_per_gram: Optional[float] = None
    priced_at: Optional[datetime] = None
    items: list[InvestmentValuationResponse] = []

    @classmethod
    def from_summary(cls, summary: PortfolioSummary) -> "PortfolioSummaryResponse":
        snapshot = summary.snapshot
        return cls(
            total_investment=summary.total_investment,
            total_weight=summary.total_weight,
            current_value=summary.current_value,
            total_profit=summary.total_profit,
            profit_percentage=summary.profit_percentage,
            profit_if_sold=summary.profit_if_sold,
            price_per_gram=snapshot.price_per_gram if snapshot else None,
            priced_at=snapshot.timestamp if snapshot else None,
            items=[InvestmentValuationResponse.from_valuation(v) for v in summary.items],
        )


# -- Notification logs --


class NotificationLogResponse(CamelModel):
    id: Optional[int] = None
    alert_id: Optional[int] = None
    channel: str
    message: str
    status: str
    error_message: Optional[str] = None
    sent_at: datetime

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationLogResponse":
        return cls(
            id=record.id,
            alert_id=record.alert_id,
            channel=record.channel,
            message=record.message,
            status=record.status.value,
            error_message=record.error_detail,
            sent_at=record.sent_at,
        )


# -- Health --


class HealthResponse(CamelModel):
    status: str
    sources: list[str]
    latest_price_at: Optional[datetime] = None
    telegram_ready: bool
    whatsapp_state: Optional[str] = None
