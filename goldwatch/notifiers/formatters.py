"""
Message rendering for price alerts and daily summaries.
"""

from typing import Optional

from goldwatch.database.models import Alert, AlertType, DailyDelta, PriceSnapshot

HTML = "html"
MARKDOWN = "markdown"


def format_number(value: float) -> str:
    """Indonesian digit grouping: 1058000 -> '1.058.000'."""
    sign = "-" if value < 0 else ""
    return sign + f"{abs(round(value)):,}".replace(",", ".")


def format_idr(value: float) -> str:
    """Format as rupiah, e.g. 'Rp 1.058.000'."""
    return f"Rp {format_number(value)}"


def format_change(value: float) -> str:
    """Signed change, e.g. '+12.000' or '-3.500'."""
    return ("+" if value >= 0 else "") + format_number(value)


def _bold(text: str, style: str) -> str:
    return f"<b>{text}</b>" if style == HTML else f"*{text}*"


def _italic(text: str, style: str) -> str:
    return f"<i>{text}</i>" if style == HTML else f"_{text}_"


def price_alert_message(alert: Alert, snapshot: PriceSnapshot, style: str = HTML) -> str:
    """Message for an increase or decrease alert."""
    current = format_idr(snapshot.price_per_gram)
    target = format_idr(alert.target_price) if alert.target_price else "-"

    if alert.type == AlertType.INCREASE:
        title = "Price Increase Alert"
        body = f"Gold price has risen to or above your target of {target}."
    else:
        title = "Price Decrease Alert"
        body = f"Gold price has fallen to or below your target of {target}."

    return (
        f"🔔 {_bold(title, style)}\n\n"
        f"{body}\n\n"
        f"Current price: {current}/{snapshot.unit}"
    )


def daily_summary_message(
    snapshot: PriceSnapshot,
    delta: Optional[DailyDelta] = None,
    style: str = HTML,
) -> str:
    """Scheduled summary of the current quotes and the day's move."""
    delta = delta or DailyDelta()
    return (
        f"📊 {_bold('Daily Gold Price Summary', style)}\n\n"
        f"Current Price: {format_idr(snapshot.price_per_gram)} "
        f"({format_change(delta.price_change)})\n"
        f"Buy Price: {format_idr(snapshot.buy_price)}\n"
        f"Sell Price: {format_idr(snapshot.sell_price)}\n\n"
        f"{_italic(f'Data source: {snapshot.source}', style)}"
    )


def render(
    alert: Alert,
    snapshot: PriceSnapshot,
    delta: Optional[DailyDelta] = None,
    style: str = HTML,
) -> str:
    """Pick the message kind for an alert."""
    if alert.type == AlertType.DAILY:
        return daily_summary_message(snapshot, delta, style)
    return price_alert_message(alert, snapshot, style)
