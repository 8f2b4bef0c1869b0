"""
Database Models - Merchant Store Schema

Tables read by the aggregation core. Every table is tenant-scoped by
``merchant_id``:

Transactional tables (raw tier):
- Order: order headers with totals and sales channel
- OrderItem: order line items
- Customer: customer records with derived order statistics
- Product: product catalog
- Refund: refunded order lines

Summary tier:
- DailyRevenueSummary: precomputed per-date/channel/segment rollup

Configuration:
- MerchantSettingsRecord: per-merchant fiscal year, churn threshold, locale
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class CustomerSegment(str, Enum):
    """Stored customer segment labels"""
    NEW = "new"
    RETURNING = "returning"
    LOYAL = "loyal"
    AT_RISK = "at_risk"
    INACTIVE = "inactive"
    CHURNED = "churned"


# =============================================================================
# TRANSACTIONAL TABLES
# =============================================================================

class Customer(Base):
    """
    Customer Table

    Order statistics (first/last order date, totals) are maintained by the
    store and only read here.
    """
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    first_order_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_order_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    total_spent: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    customer_segment: Mapped[Optional[str]] = mapped_column(String(30))

    __table_args__ = (
        Index("ix_customers_merchant_created", "merchant_id", "created_at"),
    )


class Product(Base):
    """Product catalog table"""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        Index("ix_products_merchant", "merchant_id"),
    )


class Order(Base):
    """
    Order Table

    Grain is one row per order; ``total_price`` is the order total.
    """
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("customers.id")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    channel: Mapped[Optional[str]] = mapped_column(String(50))
    customer_segment: Mapped[Optional[str]] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PAID.value)

    __table_args__ = (
        Index("ix_orders_merchant_created", "merchant_id", "created_at"),
        Index("ix_orders_customer", "customer_id"),
    )


class OrderItem(Base):
    """Order line item table"""
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
        Index("ix_order_items_product", "product_id"),
    )


class Refund(Base):
    """Refund table; one row per returned line"""
    __tablename__ = "refunds"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("products.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    reason: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_refunds_merchant_created", "merchant_id", "created_at"),
    )


# =============================================================================
# SUMMARY TIER
# =============================================================================

class DailyRevenueSummary(Base):
    """
    Daily Revenue Summary

    Precomputed rollup maintained outside this service. Grain is
    merchant x date x channel x segment.
    """
    __tablename__ = "daily_revenue_summary"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    channel: Mapped[Optional[str]] = mapped_column(String(50))
    customer_segment: Mapped[Optional[str]] = mapped_column(String(30))
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    unique_customers: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("merchant_id", "date", "channel", "customer_segment", name="uq_daily_revenue_grain"),
        Index("ix_daily_revenue_merchant_date", "merchant_id", "date"),
    )


# =============================================================================
# CONFIGURATION
# =============================================================================

class MerchantSettingsRecord(Base):
    """Per-merchant analytics settings"""
    __tablename__ = "settings"

    merchant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    financial_year_start: Mapped[str] = mapped_column(String(5), default="01-01")
    financial_year_end: Mapped[str] = mapped_column(String(5), default="12-31")
    default_date_range: Mapped[str] = mapped_column(String(50), default="financial_current")
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    churn_period_days: Mapped[int] = mapped_column(Integer, default=180)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
