"""
Investment valuation against a price snapshot.

Holdings are valued at the per-gram price; "if sold" uses the buy-back
(sell) price, which is what a dealer would actually pay.
"""

from typing import Optional, Sequence

from goldwatch.database.models import (
    Investment,
    InvestmentValuation,
    PortfolioSummary,
    PriceSnapshot,
)


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def value_investment(investment: Investment, snapshot: PriceSnapshot) -> InvestmentValuation:
    current_value = investment.weight * snapshot.price_per_gram
    profit = current_value - investment.purchase_price
    return InvestmentValuation(
        investment=investment,
        current_value=current_value,
        profit=profit,
        profit_percentage=_percent(profit, investment.purchase_price),
    )


def summarize_portfolio(
    investments: Sequence[Investment], snapshot: Optional[PriceSnapshot]
) -> PortfolioSummary:
    """
    Total cost, weight, value and profit of all investments.

    Returns an all-zero summary when there are no investments or no price.
    """
    if not investments or snapshot is None:
        return PortfolioSummary(snapshot=snapshot)

    total_investment = sum(i.purchase_price for i in investments)
    total_weight = sum(i.weight for i in investments)
    current_value = total_weight * snapshot.price_per_gram
    total_profit = current_value - total_investment

    return PortfolioSummary(
        total_investment=total_investment,
        total_weight=total_weight,
        current_value=current_value,
        total_profit=total_profit,
        profit_percentage=_percent(total_profit, total_investment),
        profit_if_sold=total_weight * snapshot.sell_price - total_investment,
        items=[value_investment(i, snapshot) for i in investments],
        snapshot=snapshot,
    )
