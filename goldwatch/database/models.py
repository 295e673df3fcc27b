"""
Data models for GoldWatch.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from goldwatch.exceptions import AlertValidationError, InvestmentValidationError


@dataclass(frozen=True)
class PriceSnapshot:
    """One normalized gold price reading."""

    timestamp: datetime
    buy_price: float
    sell_price: float
    price_per_gram: float
    source: str
    currency: str = "IDR"
    unit: str = "gram"
    high_price: Optional[float] = None
    low_price: Optional[float] = None
    id: Optional[int] = None

    def violations(self) -> list[str]:
        """List every invariant this snapshot breaks."""
        problems = []
        for name in ("buy_price", "sell_price", "price_per_gram"):
            value = getattr(self, name)
            if value is None or value <= 0:
                problems.append(f"{name} must be positive, got {value}")
        for name in ("high_price", "low_price"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                problems.append(f"{name} must be positive, got {value}")
        if not problems and self.buy_price < self.sell_price:
            problems.append(
                f"buy_price {self.buy_price} is below sell_price {self.sell_price}"
            )
        return problems

    @property
    def is_valid(self) -> bool:
        return not self.violations()


class AlertType(str, Enum):
    """Kinds of alert."""

    INCREASE = "increase"
    DECREASE = "decrease"
    DAILY = "daily"


class ChannelKind(str, Enum):
    """Supported notification channels."""

    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class NotificationStatus(str, Enum):
    """Outcome of one send attempt."""

    SENT = "sent"
    FAILED = "failed"


_DAILY_TIME = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class IncreaseCondition:
    """Fire when the per-gram price reaches or exceeds the target."""

    target_price: float

    def __post_init__(self):
        if self.target_price is None or self.target_price <= 0:
            raise AlertValidationError("target_price must be a positive number")

    @property
    def type(self) -> AlertType:
        return AlertType.INCREASE


@dataclass(frozen=True)
class DecreaseCondition:
    """Fire when the per-gram price falls to or below the target."""

    target_price: float

    def __post_init__(self):
        if self.target_price is None or self.target_price <= 0:
            raise AlertValidationError("target_price must be a positive number")

    @property
    def type(self) -> AlertType:
        return AlertType.DECREASE


@dataclass(frozen=True)
class DailyCondition:
    """Fire once at a configured hour of the day, e.g. '20:00'."""

    daily_time: str

    def __post_init__(self):
        if not self.daily_time or not _DAILY_TIME.match(self.daily_time):
            raise AlertValidationError(
                f"daily_time must be HH:MM, got {self.daily_time!r}"
            )

    @property
    def type(self) -> AlertType:
        return AlertType.DAILY

    @property
    def hour(self) -> int:
        return int(self.daily_time.split(":")[0])


AlertCondition = Union[IncreaseCondition, DecreaseCondition, DailyCondition]


def build_condition(
    alert_type: Union[AlertType, str],
    target_price: Optional[float] = None,
    daily_time: Optional[str] = None,
) -> AlertCondition:
    """
    Build the condition variant for an alert type.

    Raises:
        AlertValidationError: If a field is missing, or present for a type
            that forbids it
    """
    try:
        alert_type = AlertType(alert_type)
    except ValueError:
        raise AlertValidationError(f"Unknown alert type: {alert_type}")

    if alert_type == AlertType.DAILY:
        if target_price is not None:
            raise AlertValidationError("target_price is not allowed for daily alerts")
        return DailyCondition(daily_time=daily_time)

    if daily_time is not None:
        raise AlertValidationError(
            f"daily_time is not allowed for {alert_type.value} alerts"
        )
    if target_price is None:
        raise AlertValidationError(
            f"target_price is required for {alert_type.value} alerts"
        )
    if alert_type == AlertType.INCREASE:
        return IncreaseCondition(target_price=float(target_price))
    return DecreaseCondition(target_price=float(target_price))


@dataclass(frozen=True)
class ChannelTarget:
    """An enabled channel and the contact to deliver to."""

    kind: ChannelKind
    destination: str

    def __post_init__(self):
        if not self.destination or not str(self.destination).strip():
            raise AlertValidationError(
                f"{ChannelKind(self.kind).value} channel requires a destination"
            )


@dataclass
class Alert:
    """User-defined price alert."""

    condition: AlertCondition
    channels: list[ChannelTarget]
    frequency_hours: float = 24
    active: bool = True
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        if not self.channels:
            raise AlertValidationError("At least one notification channel is required")
        kinds = [c.kind for c in self.channels]
        if len(kinds) != len(set(kinds)):
            raise AlertValidationError("Each channel may only be enabled once")
        if self.frequency_hours is None or self.frequency_hours < 0:
            raise AlertValidationError("frequency_hours must not be negative")

    @property
    def type(self) -> AlertType:
        return self.condition.type

    @property
    def target_price(self) -> Optional[float]:
        return getattr(self.condition, "target_price", None)

    @property
    def daily_time(self) -> Optional[str]:
        return getattr(self.condition, "daily_time", None)

    def destination_for(self, kind: ChannelKind) -> Optional[str]:
        """Contact for a channel, or None if that channel is not enabled."""
        for target in self.channels:
            if target.kind == kind:
                return target.destination
        return None


@dataclass(frozen=True)
class NotificationRecord:
    """Log entry for a single send attempt."""

    channel: str
    message: str
    status: NotificationStatus
    sent_at: datetime
    alert_id: Optional[int] = None
    error_detail: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if (self.status == NotificationStatus.FAILED) != (self.error_detail is not None):
            raise ValueError("error_detail must be set exactly when status is failed")


@dataclass
class Investment:
    """A gold purchase held by the user."""

    purchase_date: datetime
    weight: float
    purchase_price: float
    purity: float = 0.999
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.weight is None or self.weight <= 0:
            raise InvestmentValidationError(f"weight must be positive, got {self.weight}")
        if self.purchase_price is None or self.purchase_price <= 0:
            raise InvestmentValidationError(
                f"purchase_price must be positive, got {self.purchase_price}"
            )
        if self.purity is None or not 0 < self.purity <= 1:
            raise InvestmentValidationError(
                f"purity must be in (0, 1], got {self.purity}"
            )


@dataclass
class PriceChange:
    """Change of a buy or sell quote between consecutive snapshots."""

    id: str
    date: datetime
    price: float
    change: float
    type: str


@dataclass
class HistoryPoint:
    """Snapshot annotated with its change from the previous reading."""

    snapshot: PriceSnapshot
    daily_change: float = 0.0
    change_percent: float = 0.0


@dataclass
class ChartPoint:
    """Label/value pair for charting."""

    label: str
    price: float


@dataclass
class DailyDelta:
    """Day-over-day change for the current snapshot."""

    price_change: float = 0.0
    buy_price_change: float = 0.0
    sell_price_change: float = 0.0
    reference: Optional[PriceSnapshot] = field(default=None, repr=False)


@dataclass
class InvestmentValuation:
    """One investment priced at the current per-gram price."""

    investment: Investment
    current_value: float = 0.0
    profit: float = 0.0
    profit_percentage: float = 0.0


@dataclass
class PortfolioSummary:
    """Totals across every investment."""

    total_investment: float = 0.0
    total_weight: float = 0.0
    current_value: float = 0.0
    total_profit: float = 0.0
    profit_percentage: float = 0.0
    profit_if_sold: float = 0.0
    items: list[InvestmentValuation] = field(default_factory=list)
    snapshot: Optional[PriceSnapshot] = field(default=None, repr=False)
