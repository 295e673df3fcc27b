"""FastAPI route definitions for the GoldWatch API."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from goldwatch.api.deps import AppState, get_app_state, get_gateway, get_pipeline
from goldwatch.api.schemas import (
    AlertCreateRequest,
    AlertFields,
    AlertResponse,
    AlertUpdateRequest,
    ChartPointResponse,
    CurrentPriceResponse,
    HealthResponse,
    HistoryItemResponse,
    InvestmentCreateRequest,
    InvestmentResponse,
    InvestmentUpdateRequest,
    NotificationLogResponse,
    PortfolioSummaryResponse,
    PriceChangeResponse,
)
from goldwatch.app import GoldWatchApp
from goldwatch.data import history
from goldwatch.data.portfolio import summarize_portfolio
from goldwatch.database.models import (
    Alert,
    AlertType,
    ChannelKind,
    ChannelTarget,
    Investment,
    build_condition,
)
from goldwatch.database.repository import PersistenceGateway

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
def health_check(state: AppState = Depends(get_app_state)):
    """Pipeline and channel status."""
    latest = state.gateway.latest_snapshot()
    whatsapp = state.channels.get(ChannelKind.WHATSAPP)
    telegram = state.channels.get(ChannelKind.TELEGRAM)
    return HealthResponse(
        status="ok",
        sources=state.pipeline.aggregator.source_names,
        latest_price_at=latest.timestamp if latest else None,
        telegram_ready=bool(telegram and telegram.is_ready()),
        whatsapp_state=whatsapp.session.state.value if whatsapp else None,
    )


# -- Gold prices --


@router.get("/gold-prices/current", response_model=CurrentPriceResponse)
def current_price(
    refresh: bool = Query(False, description="Bypass the cache and fetch live"),
    source: Optional[str] = Query(None, description="Fetch only from this source"),
    pipeline: GoldWatchApp = Depends(get_pipeline),
):
    """Latest snapshot, fetching when stale, empty, or asked to."""
    if source is not None and source not in pipeline.aggregator.source_names:
        raise HTTPException(status_code=400, detail=f"Unknown price source: {source}")

    snapshot = pipeline.current_price(source=source, refresh=refresh)
    return CurrentPriceResponse.build(snapshot, pipeline.daily_delta(snapshot))


@router.get("/gold-prices/history", response_model=list[HistoryItemResponse])
def price_history(
    timeframe: str = Query(history.DEFAULT_TIMEFRAME),
    pipeline: GoldWatchApp = Depends(get_pipeline),
):
    """Snapshots since the timeframe cutoff, newest first, with deltas."""
    cutoff = history.timeframe_cutoff(timeframe, pipeline.clock())
    snapshots = pipeline.gateway.snapshots_since(cutoff)
    return [HistoryItemResponse.from_point(p) for p in history.annotate_history(snapshots)]


@router.get("/gold-prices/chart", response_model=list[ChartPointResponse])
def price_chart(
    timeframe: str = Query("1d"),
    pipeline: GoldWatchApp = Depends(get_pipeline),
):
    """Label/price pairs, oldest first."""
    if timeframe not in history.TIMEFRAMES:
        timeframe = history.DEFAULT_TIMEFRAME
    cutoff = history.timeframe_cutoff(timeframe, pipeline.clock())
    snapshots = pipeline.gateway.snapshots_since(cutoff)
    return [
        ChartPointResponse.from_point(p) for p in history.chart_points(snapshots, timeframe)
    ]


@router.get("/gold-prices/recent-changes", response_model=list[PriceChangeResponse])
def recent_price_changes(
    limit: int = Query(5, ge=1, le=100),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Latest buy/sell quote moves."""
    snapshots = gateway.recent_snapshots(limit + 1)
    return [
        PriceChangeResponse.from_change(c)
        for c in history.recent_changes(snapshots, limit)
    ]


# -- Alerts --


def _build_alert(fields: dict[str, Any], state: AppState, base: Optional[Alert] = None) -> Alert:
    """Turn flat request fields into a validated Alert."""
    channels = []
    if fields.get("telegram_enabled"):
        channels.append(ChannelTarget(ChannelKind.TELEGRAM, fields.get("telegram_chat_id")))
    if fields.get("whatsapp_enabled"):
        channels.append(ChannelTarget(ChannelKind.WHATSAPP, fields.get("phone_number")))

    condition = build_condition(
        fields.get("alert_type"),
        target_price=fields.get("target_price"),
        daily_time=fields.get("daily_time"),
    )

    frequency = fields.get("frequency_hours")
    if frequency is None:
        frequency = state.config.advanced.default_frequency(condition.type)

    return Alert(
        id=base.id if base else None,
        condition=condition,
        channels=channels,
        frequency_hours=frequency,
        active=fields.get("active", True),
        created_at=base.created_at if base else state.clock(),
        last_triggered_at=base.last_triggered_at if base else None,
    )


def _alert_to_fields(alert: Alert) -> dict[str, Any]:
    response = AlertResponse.from_alert(alert)
    return response.model_dump(include=set(AlertFields.model_fields))


@router.get("/alerts", response_model=list[AlertResponse])
def list_alerts(
    active_only: bool = Query(False, alias="activeOnly"),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Every alert, or only active ones with activeOnly."""
    alerts = gateway.active_alerts() if active_only else gateway.all_alerts()
    return [AlertResponse.from_alert(a) for a in alerts]


@router.get("/alerts/{alert_id}", response_model=AlertResponse)
def get_alert(alert_id: int, gateway: PersistenceGateway = Depends(get_gateway)):
    """Single alert by id."""
    alert = gateway.get_alert(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="Price alert not found")
    return AlertResponse.from_alert(alert)


@router.post("/alerts", response_model=AlertResponse, status_code=201)
def create_alert(
    request: AlertCreateRequest,
    state: AppState = Depends(get_app_state),
):
    """Create an alert; type-dependent fields are validated."""
    alert = _build_alert(request.model_dump(), state)
    created = state.gateway.create_alert(alert)
    return AlertResponse.from_alert(created)


@router.put("/alerts/{alert_id}", response_model=AlertResponse)
def update_alert(
    alert_id: int,
    request: AlertUpdateRequest,
    state: AppState = Depends(get_app_state),
):
    """Merge the given fields into an alert and revalidate it."""
    existing = state.gateway.get_alert(alert_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Price alert not found")

    changes = request.model_dump(exclude_unset=True)
    fields = _alert_to_fields(existing)
    fields.update(changes)

    # Switching type drops the other variant's field unless it was sent
    new_type = changes.get("alert_type")
    if new_type is not None and new_type != existing.type.value:
        if new_type == AlertType.DAILY.value and "target_price" not in changes:
            fields["target_price"] = None
        if new_type != AlertType.DAILY.value and "daily_time" not in changes:
            fields["daily_time"] = None

    if fields.get("frequency_hours") is None:
        fields.pop("frequency_hours", None)

    alert = _build_alert(fields, state, base=existing)
    state.gateway.update_alert(alert)
    stored = state.gateway.get_alert(alert_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Price alert not found")
    return AlertResponse.from_alert(stored)


@router.delete("/alerts/{alert_id}", status_code=204)
def delete_alert(alert_id: int, gateway: PersistenceGateway = Depends(get_gateway)):
    """Hard-delete an alert."""
    if not gateway.delete_alert(alert_id):
        raise HTTPException(status_code=404, detail="Price alert not found")
    return Response(status_code=204)


# -- Investments --


@router.get("/investments", response_model=list[InvestmentResponse])
def list_investments(gateway: PersistenceGateway = Depends(get_gateway)):
    """Every investment, most recent purchase first."""
    return [InvestmentResponse.from_investment(i) for i in gateway.list_investments()]


@router.get("/investments/summary", response_model=PortfolioSummaryResponse)
def investment_summary(pipeline: GoldWatchApp = Depends(get_pipeline)):
    """Portfolio totals valued at the current price."""
    investments = pipeline.gateway.list_investments()
    snapshot = pipeline.current_price() if investments else None
    return PortfolioSummaryResponse.from_summary(summarize_portfolio(investments, snapshot))


@router.get("/investments/{investment_id}", response_model=InvestmentResponse)
def get_investment(investment_id: int, gateway: PersistenceGateway = Depends(get_gateway)):
    investment = gateway.get_investment(investment_id)
    if investment is None:
        raise HTTPException(status_code=404, detail="Investment not found")
    return InvestmentResponse.from_investment(investment)


@router.post("/investments", response_model=InvestmentResponse, status_code=201)
def create_investment(
    request: InvestmentCreateRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Record a gold purchase."""
    created = gateway.create_investment(Investment(**request.model_dump()))
    return InvestmentResponse.from_investment(created)


@router.put("/investments/{investment_id}", response_model=InvestmentResponse)
def update_investment(
    investment_id: int,
    request: InvestmentUpdateRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Merge the given fields into an investment."""
    existing = gateway.get_investment(investment_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Investment not found")

    fields = {
        "purchase_date": existing.purchase_date,
        "weight": existing.weight,
        "purchase_price": existing.purchase_price,
        "purity": existing.purity,
        "notes": existing.notes,
    }
    fields.update(request.model_dump(exclude_unset=True))
    investment = Investment(
        id=existing.id, created_at=existing.created_at, **fields
    )
    if not gateway.update_investment(investment):
        raise HTTPException(status_code=404, detail="Investment not found")
    return InvestmentResponse.from_investment(investment)


@router.delete("/investments/{investment_id}", status_code=204)
def delete_investment(investment_id: int, gateway: PersistenceGateway = Depends(get_gateway)):
    if not gateway.delete_investment(investment_id):
        raise HTTPException(status_code=404, detail="Investment not found")
    return Response(status_code=204)


# -- Notification logs --


@router.get("/notification-logs", response_model=list[NotificationLogResponse])
def notification_logs(
    limit: int = Query(100, ge=1, le=1000),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Most recent send attempts."""
    return [NotificationLogResponse.from_record(r) for r in gateway.notification_logs(limit)]
