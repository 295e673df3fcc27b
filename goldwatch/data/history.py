"""
Derived views over stored snapshots: history, chart points, deltas.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

from goldwatch.database.models import (
    ChartPoint,
    DailyDelta,
    HistoryPoint,
    PriceChange,
    PriceSnapshot,
)

TIMEFRAMES = ("1d", "1w", "1m", "3m", "6m", "1y", "all")
DEFAULT_TIMEFRAME = "1w"

# How far back to look for the previous day's reading
DELTA_LOOKBACK = timedelta(days=7)


def _months_ago(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # Clamp to the last valid day, e.g. 31 March minus one month
    for day in (moment.day, 30, 29, 28):
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    raise ValueError(f"cannot shift {moment} by {months} months")


def timeframe_cutoff(timeframe: str, now: datetime) -> datetime:
    """Earliest timestamp included in a timeframe."""
    if timeframe not in TIMEFRAMES:
        timeframe = DEFAULT_TIMEFRAME

    if timeframe == "1d":
        return now - timedelta(days=1)
    if timeframe == "1w":
        return now - timedelta(days=7)
    if timeframe == "1m":
        return _months_ago(now, 1)
    if timeframe == "3m":
        return _months_ago(now, 3)
    if timeframe == "6m":
        return _months_ago(now, 6)
    if timeframe == "1y":
        return _months_ago(now, 12)
    return datetime(2000, 1, 1, tzinfo=now.tzinfo)


def annotate_history(snapshots: Sequence[PriceSnapshot]) -> list[HistoryPoint]:
    """
    Attach the change from the preceding reading to each snapshot.

    Args:
        snapshots: Newest first

    Returns:
        Points newest first; the oldest has zero change
    """
    points = []
    for i, current in enumerate(snapshots):
        point = HistoryPoint(snapshot=current)
        if i + 1 < len(snapshots):
            previous = snapshots[i + 1]
            point.daily_change = current.price_per_gram - previous.price_per_gram
            point.change_percent = point.daily_change / previous.price_per_gram * 100
        points.append(point)
    return points


def chart_label(timestamp: datetime, timeframe: str) -> str:
    if timeframe == "1d":
        return timestamp.strftime("%H:%M")
    if timeframe == "1w":
        return timestamp.strftime("%a %H")
    return f"{timestamp:%b} {timestamp.day}"


def chart_points(snapshots: Sequence[PriceSnapshot], timeframe: str) -> list[ChartPoint]:
    """Chart pairs, oldest first, from newest-first snapshots."""
    return [
        ChartPoint(label=chart_label(s.timestamp, timeframe), price=s.price_per_gram)
        for s in reversed(snapshots)
    ]


def recent_changes(snapshots: Sequence[PriceSnapshot], limit: int = 5) -> list[PriceChange]:
    """
    Buy and sell quote moves between consecutive snapshots.

    Args:
        snapshots: Newest first; pass ``limit + 1`` to fill ``limit`` slots
    """
    changes = []
    for current, previous in zip(snapshots, snapshots[1:]):
        if current.buy_price != previous.buy_price:
            changes.append(
                PriceChange(
                    id=f"buy-{current.id}",
                    date=current.timestamp,
                    price=current.buy_price,
                    change=current.buy_price - previous.buy_price,
                    type="Buy Price",
                )
            )
        if current.sell_price != previous.sell_price:
            changes.append(
                PriceChange(
                    id=f"sell-{current.id}",
                    date=current.timestamp,
                    price=current.sell_price,
                    change=current.sell_price - previous.sell_price,
                    type="Sell Price",
                )
            )
    changes.sort(key=lambda c: c.date, reverse=True)
    return changes[:limit]


def previous_day_snapshot(
    current: PriceSnapshot, snapshots: Sequence[PriceSnapshot]
) -> Optional[PriceSnapshot]:
    """Latest snapshot taken before the calendar day of ``current``."""
    start_of_day = current.timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    candidates = [s for s in snapshots if s.timestamp < start_of_day]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.timestamp)


def day_over_day(
    current: PriceSnapshot, snapshots: Sequence[PriceSnapshot]
) -> DailyDelta:
    """Change of ``current`` against the previous day's last reading."""
    reference = previous_day_snapshot(current, snapshots)
    if reference is None:
        return DailyDelta()
    return DailyDelta(
        price_change=current.price_per_gram - reference.price_per_gram,
        buy_price_change=current.buy_price - reference.buy_price,
        sell_price_change=current.sell_price - reference.sell_price,
        reference=reference,
    )
