"""
Period Comparison

Point-to-point percentage change and trend direction between a current
and a previous KPI set of the same shape.
"""

from typing import Optional

from .schemas import ComparisonResult, KPIComparison, KPISet, Trend

# Metrics where a decrease is an improvement
LOWER_IS_BETTER = {"churn_risk"}


def calculate_change(current: float, previous: float) -> float:
    """
    Percentage change from ``previous`` to ``current``.

    A zero baseline yields 100 when current is positive and 0 otherwise.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def compare_metric(current: float, previous: float, lower_is_better: bool = False) -> ComparisonResult:
    if lower_is_better:
        improved = current <= previous
    else:
        improved = current >= previous
    return ComparisonResult(
        current=current,
        previous=previous,
        change=round(calculate_change(current, previous), 1),
        trend=Trend.UP if improved else Trend.DOWN,
    )


def compare(current: KPISet, previous: KPISet) -> KPIComparison:
    """Compare every KPI; churn risk trends up when it falls."""
    return KPIComparison(**{
        name: compare_metric(
            getattr(current, name),
            getattr(previous, name),
            lower_is_better=name in LOWER_IS_BETTER,
        )
        for name in KPISet.model_fields
    })


def growth_driver(orders_growth: Optional[float], aov_growth: Optional[float]) -> Optional[str]:
    """
    Whether revenue moved mainly through order volume or basket size.

    Returns "volume" or "aov" when one growth rate is more than 1.5 times
    the other in magnitude, otherwise "mixed".
    """
    if orders_growth is None or aov_growth is None:
        return None
    if abs(orders_growth) > abs(aov_growth) * 1.5:
        return "volume"
    if abs(aov_growth) > abs(orders_growth) * 1.5:
        return "aov"
    return "mixed"
