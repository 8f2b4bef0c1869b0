"""
Sales Insights

Rule-based observations over a sales window: revenue swings, what drove
growth, channel concentration and day-to-day volatility.
"""

from typing import List, Optional, Sequence

import numpy as np
import structlog

from .comparison import growth_driver
from .schemas import BreakdownRow, SalesInsight, TimeSeriesPoint

logger = structlog.get_logger(__name__)

MAX_INSIGHTS = 4

REVENUE_SWING_THRESHOLD = 20.0
REVENUE_SWING_HIGH = 50.0
CONCENTRATION_THRESHOLD = 50.0
CONCENTRATION_HIGH = 80.0
VOLATILITY_THRESHOLD = 30.0
VOLATILITY_HIGH = 50.0
VOLATILITY_MIN_POINTS = 7


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """Population standard deviation over mean, as a percentage."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return None
    mean = float(arr.mean())
    if mean == 0:
        return None
    return float(arr.std()) / mean * 100


def generate_sales_insights(
    revenue_growth: Optional[float],
    orders_growth: Optional[float],
    aov_growth: Optional[float],
    series: Sequence[TimeSeriesPoint],
    channels: Sequence[BreakdownRow],
) -> List[SalesInsight]:
    """
    Build at most four insights for a sales window.

    Args:
        revenue_growth: Revenue change versus the previous period, percent
        orders_growth: Order count change, percent
        aov_growth: Average order value change, percent
        series: Revenue series for the current window
        channels: Channel breakdown for the current window
    """
    insights: List[SalesInsight] = []

    if revenue_growth is not None and abs(revenue_growth) > REVENUE_SWING_THRESHOLD:
        direction = "up" if revenue_growth > 0 else "down"
        insights.append(SalesInsight(
            type="revenue_growth" if revenue_growth > 0 else "revenue_decline",
            title=f"Revenue {direction} {abs(revenue_growth):.1f}%",
            description=f"Revenue is {direction} {abs(revenue_growth):.1f}% against the previous period.",
            impact="high" if abs(revenue_growth) > REVENUE_SWING_HIGH else "medium",
            value=round(revenue_growth, 1),
        ))

    driver = growth_driver(orders_growth, aov_growth)
    if driver is not None and revenue_growth:
        descriptions = {
            "volume": f"Order volume changed {orders_growth:.1f}% while average order value changed {aov_growth:.1f}%.",
            "aov": f"Average order value changed {aov_growth:.1f}% while order volume changed {orders_growth:.1f}%.",
            "mixed": "Order volume and average order value contributed in similar measure.",
        }
        titles = {
            "volume": "Growth driven by order volume",
            "aov": "Growth driven by order value",
            "mixed": "Balanced growth drivers",
        }
        insights.append(SalesInsight(
            type="growth_driver",
            title=titles[driver],
            description=descriptions[driver],
            impact="medium",
        ))

    if channels:
        top = channels[0]
        if top.percentage > CONCENTRATION_THRESHOLD:
            insights.append(SalesInsight(
                type="channel_concentration",
                title=f"{top.name} dominates sales",
                description=f"{top.name} accounts for {top.percentage:.1f}% of revenue.",
                impact="high" if top.percentage > CONCENTRATION_HIGH else "medium",
                value=top.percentage,
            ))

    if len(series) > VOLATILITY_MIN_POINTS:
        cv = coefficient_of_variation([p.revenue for p in series])
        if cv is not None and cv > VOLATILITY_THRESHOLD:
            insights.append(SalesInsight(
                type="volatility",
                title="Revenue is volatile",
                description=f"Revenue varies by {cv:.1f}% around its mean across the period.",
                impact="high" if cv > VOLATILITY_HIGH else "medium",
                value=round(cv, 1),
            ))

    logger.debug("Sales insights generated", count=len(insights))
    return insights[:MAX_INSIGHTS]
