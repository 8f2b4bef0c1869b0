"""
Customer Scoring

Churn risk per customer, behavioural reclassification of stored segment
labels, recency/frequency business segments and lifetime-value bands.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from .aggregations import parse_timestamp, safe_divide
from .rows import CustomerRow, OrderRow, to_naive_utc
from .schemas import (
    BusinessSegment,
    BusinessSegmentation,
    ChurnSummary,
    CustomerRisk,
    LTVBand,
    RiskLevel,
    SegmentMember,
)

logger = structlog.get_logger(__name__)

ONE_DAY = timedelta(days=1)

# Frequency assumed for customers with fewer than two orders
DEFAULT_ORDER_FREQUENCY_DAYS = 365.0

NEW_CUSTOMER_WINDOW_DAYS = 90
LOYAL_INACTIVE_DAYS = 120
RETURNING_INACTIVE_DAYS = 90

LTV_BANDS: List[Tuple[float, Optional[float]]] = [
    (0, 500),
    (500, 1000),
    (1000, 2000),
    (2000, 3000),
    (3000, 5000),
    (5000, None),
]

SEGMENT_PRIORITY = [
    "best_customers",
    "loyal_customers",
    "promising_customers",
    "recent_customers",
    "defecting_customers",
    "at_risk_customers",
    "dormant_customers",
]

SEGMENT_DESCRIPTIONS = {
    "best_customers": "Ordered within the last 30 days and have made 4 or more orders",
    "loyal_customers": "Last ordered 1-6 months ago and have made 4 or more orders",
    "promising_customers": "Made 2-3 orders and were active within the last 6 months",
    "recent_customers": "Ordered within the last 30 days but have made only 1 order",
    "defecting_customers": "Ordered 1-6 months ago but have made only 1 order",
    "at_risk_customers": "Last active 6-12 months ago",
    "dormant_customers": "Last active over 12 months ago, or never ordered",
}

RISK_ORDER = {RiskLevel.HIGH: 0, RiskLevel.MEDIUM: 1, RiskLevel.LOW: 2}


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days from ``earlier`` to ``later``, floored."""
    return (later - earlier) // ONE_DAY


def average_order_frequency(
    first_order: Optional[datetime],
    last_order: Optional[datetime],
    order_count: int,
) -> float:
    """Mean days between orders; 365 when fewer than two orders exist."""
    if order_count < 2 or first_order is None or last_order is None:
        return DEFAULT_ORDER_FREQUENCY_DAYS
    span_days = (last_order - first_order) / ONE_DAY
    return span_days / (order_count - 1)


def risk_level(
    days_since_last_order: int,
    avg_order_frequency: float,
    churn_period_days: int,
) -> RiskLevel:
    if days_since_last_order > churn_period_days:
        return RiskLevel.HIGH
    if days_since_last_order > 0.5 * churn_period_days and avg_order_frequency < 30:
        return RiskLevel.HIGH
    if days_since_last_order > 0.33 * churn_period_days and avg_order_frequency < 45:
        return RiskLevel.MEDIUM
    if days_since_last_order > 2 * avg_order_frequency:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def reclassify_segment(
    stored_segment: Optional[str],
    is_churned: bool,
    lifetime_orders: int,
    days_since_first_order: Optional[int],
    days_since_last_order: Optional[int],
) -> str:
    """
    Override a stored segment label with observed behaviour.

    Churned customers are always "churned". "new" customers past their
    first 90 days become loyal, returning or inactive by order count; loyal
    and returning customers idle past 120 and 90 days become "at_risk".
    """
    if is_churned:
        return "churned"

    segment = (stored_segment or "new").lower()

    if segment == "new" and days_since_first_order is not None and days_since_first_order > NEW_CUSTOMER_WINDOW_DAYS:
        if lifetime_orders >= 5:
            segment = "loyal"
        elif lifetime_orders >= 2:
            segment = "returning"
        else:
            segment = "inactive"

    if days_since_last_order is not None:
        if segment == "loyal" and days_since_last_order > LOYAL_INACTIVE_DAYS:
            segment = "at_risk"
        elif segment == "returning" and days_since_last_order > RETURNING_INACTIVE_DAYS:
            segment = "at_risk"

    return segment


def score_customer(customer: CustomerRow, churn_period_days: int, now: datetime) -> CustomerRisk:
    """Churn score and reclassified segment for one customer."""
    now = to_naive_utc(now)
    last_order = parse_timestamp(customer.last_order_date)
    first_order = parse_timestamp(customer.first_order_date) or last_order
    frequency = average_order_frequency(first_order, last_order, customer.total_orders)

    if last_order is None:
        days_since_last = None
        is_churned = False
        level = RiskLevel.LOW
    else:
        days_since_last = days_between(last_order, now)
        is_churned = days_since_last > churn_period_days
        level = risk_level(days_since_last, frequency, churn_period_days)

    days_since_first = days_between(first_order, now) if first_order is not None else None

    return CustomerRisk(
        customer_id=customer.id,
        name=customer.name,
        email=customer.email,
        total_orders=customer.total_orders,
        total_spent=round(customer.total_spent, 2),
        days_since_last_order=days_since_last,
        avg_order_frequency=round(frequency, 1),
        is_churned=is_churned,
        risk_level=level,
        stored_segment=customer.customer_segment,
        segment=reclassify_segment(
            customer.customer_segment,
            is_churned,
            customer.total_orders,
            days_since_first,
            days_since_last,
        ),
    )


def customer_as_of(customer: CustomerRow, orders: Iterable[OrderRow], as_of: datetime) -> CustomerRow:
    """
    The customer's order statistics as they stood at ``as_of``.

    Stored statistics are returned unchanged unless the stored last order
    falls after ``as_of``; then first and last order, count and spend are
    rebuilt from the customer's orders placed on or before ``as_of``.
    """
    last_order = parse_timestamp(customer.last_order_date)
    if last_order is None or last_order <= as_of:
        return customer

    placed = []
    for order in orders:
        created = parse_timestamp(order.created_at)
        if created is not None and created <= as_of:
            placed.append((created, order.total_price or 0.0))
    placed.sort(key=lambda p: p[0])

    return replace(
        customer,
        first_order_date=placed[0][0] if placed else None,
        last_order_date=placed[-1][0] if placed else None,
        total_orders=len(placed),
        total_spent=sum(amount for _, amount in placed),
    )


def score_customers(
    customers: Iterable[CustomerRow],
    churn_period_days: int,
    now: datetime,
) -> List[CustomerRisk]:
    """Score every customer; highest risk and longest idle first."""
    scores = [score_customer(c, churn_period_days, now) for c in customers]
    scores.sort(key=lambda s: (
        RISK_ORDER[s.risk_level],
        -(s.days_since_last_order if s.days_since_last_order is not None else -1),
        s.customer_id,
    ))
    return scores


def churn_summary(scores: List[CustomerRisk]) -> ChurnSummary:
    total = len(scores)
    churned = sum(1 for s in scores if s.is_churned)
    counts = {level: 0 for level in RiskLevel}
    revenue_at_risk = 0.0
    for s in scores:
        counts[s.risk_level] += 1
        if s.risk_level in (RiskLevel.HIGH, RiskLevel.MEDIUM):
            revenue_at_risk += s.total_spent

    return ChurnSummary(
        total_customers=total,
        churned_customers=churned,
        high_risk=counts[RiskLevel.HIGH],
        medium_risk=counts[RiskLevel.MEDIUM],
        low_risk=counts[RiskLevel.LOW],
        churn_rate=round(safe_divide(churned, total) * 100, 1),
        revenue_at_risk=round(revenue_at_risk, 2),
    )


def ltv_distribution(customers: Iterable[CustomerRow], symbol: str = "$") -> List[LTVBand]:
    """Customers per lifetime-spend band; empty bands are omitted."""
    totals = [(0, 0.0) for _ in LTV_BANDS]
    for customer in customers:
        spent = customer.total_spent or 0.0
        for index, (low, high) in enumerate(LTV_BANDS):
            if spent >= low and (high is None or spent < high):
                count, value = totals[index]
                totals[index] = (count + 1, value + spent)
                break

    bands = []
    for (low, high), (count, value) in zip(LTV_BANDS, totals):
        if count == 0:
            continue
        label = f"{symbol}{low:,.0f}+" if high is None else f"{symbol}{low:,.0f} - {symbol}{high:,.0f}"
        bands.append(LTVBand(
            ltv_range=label,
            min_value=low,
            max_value=high,
            customer_count=count,
            total_ltv=round(value, 2),
        ))
    return bands


def business_segment_for(order_count: int, days_since_last_order: Optional[int]) -> str:
    """Recency/frequency segment name for one customer."""
    if order_count == 0 or days_since_last_order is None:
        return "dormant_customers"
    days = days_since_last_order
    if days <= 30 and order_count >= 4:
        return "best_customers"
    if 30 <= days <= 180 and order_count >= 4:
        return "loyal_customers"
    if days <= 180 and 2 <= order_count <= 3:
        return "promising_customers"
    if days <= 30 and order_count == 1:
        return "recent_customers"
    if 30 <= days <= 180 and order_count == 1:
        return "defecting_customers"
    if 180 <= days <= 365:
        return "at_risk_customers"
    return "dormant_customers"


def business_segments(
    customers: Iterable[CustomerRow],
    orders: Iterable[OrderRow],
    now: datetime,
) -> BusinessSegmentation:
    """
    Group customers into recency/frequency segments from their orders.

    Segments come back in priority order, best first; empty segments are
    omitted.
    """
    orders_by_customer: Dict[str, List[OrderRow]] = {}
    for order in orders:
        if order.customer_id:
            orders_by_customer.setdefault(order.customer_id, []).append(order)

    members: Dict[str, List[Tuple[SegmentMember, float]]] = {}
    customer_list = list(customers)

    for customer in customer_list:
        customer_orders = orders_by_customer.get(customer.id, [])
        spent = sum(o.total_price or 0.0 for o in customer_orders)
        count = len(customer_orders)
        timestamps = [ts for ts in (parse_timestamp(o.created_at) for o in customer_orders) if ts is not None]
        days_since_last = days_between(max(timestamps), now) if timestamps else None

        segment = business_segment_for(count, days_since_last)
        member = SegmentMember(
            customer_id=customer.id,
            name=customer.name,
            email=customer.email,
            total_spent=round(spent, 2),
            order_count=count,
            days_since_last_order=days_since_last,
        )
        members.setdefault(segment, []).append((member, safe_divide(spent, count)))

    total = len(customer_list)
    segments = []
    for name in SEGMENT_PRIORITY:
        group = members.get(name)
        if not group:
            continue
        size = len(group)
        segments.append(BusinessSegment(
            segment_name=name,
            description=SEGMENT_DESCRIPTIONS[name],
            customer_count=size,
            total_revenue=round(sum(m.total_spent for m, _ in group), 2),
            avg_order_value=round(sum(aov for _, aov in group) / size, 2),
            avg_orders_per_customer=round(sum(m.order_count for m, _ in group) / size, 2),
            percentage=round(safe_divide(size, total) * 100, 1),
            customers=sorted((m for m, _ in group), key=lambda m: (-m.total_spent, m.customer_id)),
        ))

    return BusinessSegmentation(total_customers=total, segments=segments)
