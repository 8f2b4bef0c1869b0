"""
Row Types

Typed snapshots of the rows each source tier returns, plus the mapping of
both tiers into the canonical ``RevenueRecord`` consumed by the rollups.
Rows are built from ORM objects by explicit mappers; nothing downstream
probes for field names.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union


class SourceTier(str, Enum):
    """Which tier a row came from"""
    SUMMARY = "summary"
    RAW = "raw"


def to_float(value: Any) -> float:
    """Money columns arrive as Decimal, float or None."""
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def to_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def to_naive_utc(value: datetime) -> datetime:
    """Offset-aware timestamps are shifted to UTC and stored naive."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class SummaryRow:
    """One row of the daily revenue summary table"""
    date: date
    channel: Optional[str]
    customer_segment: Optional[str]
    total_revenue: float
    total_orders: int
    unique_customers: int
    tier: SourceTier = field(default=SourceTier.SUMMARY, init=False)

    @classmethod
    def from_model(cls, model) -> "SummaryRow":
        return cls(
            date=model.date,
            channel=model.channel,
            customer_segment=model.customer_segment,
            total_revenue=to_float(model.total_revenue),
            total_orders=to_int(model.total_orders),
            unique_customers=to_int(model.unique_customers),
        )


@dataclass(frozen=True)
class OrderRow:
    """One order from the transactional table"""
    id: str
    created_at: Union[datetime, str, None]
    total_price: float
    customer_id: Optional[str] = None
    channel: Optional[str] = None
    customer_segment: Optional[str] = None
    status: Optional[str] = None
    tier: SourceTier = field(default=SourceTier.RAW, init=False)

    @classmethod
    def from_model(cls, model) -> "OrderRow":
        return cls(
            id=model.id,
            created_at=model.created_at,
            total_price=to_float(model.total_price),
            customer_id=model.customer_id,
            channel=model.channel,
            customer_segment=model.customer_segment,
            status=model.status,
        )


@dataclass(frozen=True)
class CustomerRow:
    """One customer with store-maintained order statistics"""
    id: str
    created_at: Union[datetime, str, None]
    first_order_date: Optional[datetime] = None
    last_order_date: Optional[datetime] = None
    total_orders: int = 0
    total_spent: float = 0.0
    customer_segment: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    tier: SourceTier = field(default=SourceTier.RAW, init=False)

    @property
    def name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or "Unknown"

    @classmethod
    def from_model(cls, model) -> "CustomerRow":
        return cls(
            id=model.id,
            created_at=model.created_at,
            first_order_date=model.first_order_date,
            last_order_date=model.last_order_date,
            total_orders=to_int(model.total_orders),
            total_spent=to_float(model.total_spent),
            customer_segment=model.customer_segment,
            first_name=model.first_name,
            last_name=model.last_name,
            email=model.email,
        )


@dataclass(frozen=True)
class LineItemRow:
    """An order line item joined with its order header and product"""
    order_id: str
    product_id: str
    quantity: int
    unit_price: float
    created_at: Union[datetime, str, None] = None
    customer_id: Optional[str] = None
    product_name: Optional[str] = None
    category: Optional[str] = None
    customer_name: Optional[str] = None
    tier: SourceTier = field(default=SourceTier.RAW, init=False)

    @property
    def revenue(self) -> float:
        return self.quantity * self.unit_price

    @classmethod
    def from_result(cls, item, order, product=None, customer=None) -> "LineItemRow":
        customer_name = None
        if customer is not None:
            customer_name = f"{customer.first_name or ''} {customer.last_name or ''}".strip() or None
        return cls(
            order_id=item.order_id,
            product_id=item.product_id,
            quantity=to_int(item.quantity),
            unit_price=to_float(item.price),
            created_at=order.created_at,
            customer_id=order.customer_id,
            product_name=product.name if product is not None else None,
            category=product.category if product is not None else None,
            customer_name=customer_name,
        )


@dataclass(frozen=True)
class RefundRow:
    """A refunded order line"""
    order_id: str
    amount: float
    created_at: Union[datetime, str, None]
    product_id: Optional[str] = None
    reason: Optional[str] = None
    product_name: Optional[str] = None
    category: Optional[str] = None
    tier: SourceTier = field(default=SourceTier.RAW, init=False)

    @classmethod
    def from_result(cls, refund, product=None) -> "RefundRow":
        return cls(
            order_id=refund.order_id,
            amount=to_float(refund.amount),
            created_at=refund.created_at,
            product_id=refund.product_id,
            reason=refund.reason,
            product_name=product.name if product is not None else None,
            category=product.category if product is not None else None,
        )


@dataclass(frozen=True)
class RevenueRecord:
    """
    Canonical revenue-bearing record fed to the time series and breakdowns.

    Raw-tier records carry one order and its ``customer_id``; summary-tier
    records carry pre-aggregated counts in ``orders`` and ``customer_count``.
    """
    timestamp: Union[datetime, str, None]
    revenue: float
    orders: int
    channel: Optional[str] = None
    customer_segment: Optional[str] = None
    customer_id: Optional[str] = None
    customer_count: int = 0
    tier: SourceTier = SourceTier.RAW


def to_revenue_record(row: Union[SummaryRow, OrderRow]) -> RevenueRecord:
    """Map a summary-tier or raw-tier row into a ``RevenueRecord``."""
    if isinstance(row, SummaryRow):
        return RevenueRecord(
            timestamp=datetime.combine(row.date, time.min),
            revenue=row.total_revenue,
            orders=row.total_orders,
            channel=row.channel,
            customer_segment=row.customer_segment,
            customer_count=row.unique_customers,
            tier=SourceTier.SUMMARY,
        )
    if isinstance(row, OrderRow):
        return RevenueRecord(
            timestamp=row.created_at,
            revenue=row.total_price,
            orders=1,
            channel=row.channel,
            customer_segment=row.customer_segment,
            customer_id=row.customer_id,
            tier=SourceTier.RAW,
        )
    raise TypeError(f"Cannot map {type(row).__name__} to a revenue record")
