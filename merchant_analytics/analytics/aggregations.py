"""
Aggregation Engine

Pure rollups over typed rows: time-bucketed revenue series, channel and
segment breakdowns, top-N rankings, hour-of-day distribution and cohort
curves. Bucket keys are computed per row, then grouped with polars.

Functions never raise on empty input. Rows with unparseable timestamps are
logged and skipped.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import polars as pl
import structlog

from .comparison import calculate_change
from .rows import CustomerRow, LineItemRow, OrderRow, RefundRow, RevenueRecord, to_naive_utc
from .schemas import (
    BreakdownRow,
    CategoryPerformance,
    CohortIncomePoint,
    CohortRetentionPoint,
    CohortRetentionRow,
    Granularity,
    HourlyPoint,
    ProductPerformance,
    ProductPerformanceReport,
    ProductPerformanceSummary,
    ProductTrendPoint,
    ReturnedProduct,
    ReturnReason,
    ReturnsReport,
    TimeSeriesPoint,
    TopCustomer,
    TopProduct,
)

logger = structlog.get_logger(__name__)

PALETTE = ["#3b82f6", "#10b981", "#f59e0b", "#8b5cf6", "#ef4444", "#6b7280"]

DEFAULT_LABELS = {
    "channel": "Direct",
    "segment": "Unknown",
}

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

Timestamp = Union[datetime, date, str, None]


# =============================================================================
# HELPERS
# =============================================================================

def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """
    Coerce a row timestamp to a naive ``datetime``; None when it cannot be read.

    Offset-aware values (``2024-01-05T00:00:00Z``) are converted to UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return to_naive_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def safe_divide(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


def palette_color(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


def _frame(columns: Dict[str, list], schema: Dict[str, Any]) -> pl.DataFrame:
    return pl.DataFrame(columns, schema=schema)


# =============================================================================
# TIME BUCKETING
# =============================================================================

def bucket_key(value: Timestamp, granularity: Union[Granularity, str]) -> Optional[str]:
    """
    Chronologically sortable bucket key for a timestamp.

    daily ``YYYY-MM-DD``; weekly is the Monday starting the week as
    ``YYYY-MM-DD``; monthly ``YYYY-MM``; quarterly is the quarter's first
    month as ``YYYY-MM``; yearly ``YYYY``.
    """
    ts = parse_timestamp(value)
    if ts is None:
        return None

    granularity = Granularity(granularity)
    day = ts.date()

    if granularity == Granularity.DAILY:
        return day.isoformat()
    if granularity == Granularity.WEEKLY:
        return (day - timedelta(days=day.weekday())).isoformat()
    if granularity == Granularity.MONTHLY:
        return f"{day.year:04d}-{day.month:02d}"
    if granularity == Granularity.QUARTERLY:
        quarter_start = (day.month - 1) // 3 * 3 + 1
        return f"{day.year:04d}-{quarter_start:02d}"
    return f"{day.year:04d}"


def bucket_label(key: str, granularity: Union[Granularity, str]) -> str:
    """Display label for a bucket key."""
    granularity = Granularity(granularity)
    if granularity == Granularity.WEEKLY:
        return f"Week of {key}"
    if granularity == Granularity.MONTHLY:
        year, month = key.split("-")
        return f"{MONTH_NAMES[int(month) - 1]} {year}"
    if granularity == Granularity.QUARTERLY:
        year, month = key.split("-")
        return f"Q{(int(month) - 1) // 3 + 1} {year}"
    return key


def rollup_time_series(
    records: Iterable[RevenueRecord],
    granularity: Union[Granularity, str] = Granularity.DAILY,
) -> List[TimeSeriesPoint]:
    """
    Bucket revenue records into a sorted series.

    Per bucket: revenue sum, order count, distinct customers, average order
    value and ordering rate (orders per hundred customers).
    """
    granularity = Granularity(granularity)
    columns: Dict[str, list] = {"bucket": [], "revenue": [], "orders": [], "customer_id": [], "customer_count": []}

    for record in records:
        key = bucket_key(record.timestamp, granularity)
        if key is None:
            logger.warning("Skipping row with invalid date", timestamp=str(record.timestamp))
            continue
        columns["bucket"].append(key)
        columns["revenue"].append(record.revenue or 0.0)
        columns["orders"].append(record.orders or 0)
        columns["customer_id"].append(record.customer_id)
        columns["customer_count"].append(record.customer_count or 0)

    if not columns["bucket"]:
        return []

    df = _frame(columns, {
        "bucket": pl.Utf8,
        "revenue": pl.Float64,
        "orders": pl.Int64,
        "customer_id": pl.Utf8,
        "customer_count": pl.Int64,
    })

    grouped = (
        df.group_by("bucket")
        .agg([
            pl.col("revenue").sum().alias("revenue"),
            pl.col("orders").sum().alias("orders"),
            pl.col("customer_id").drop_nulls().n_unique().alias("distinct_customers"),
            pl.col("customer_count").sum().alias("customer_count"),
        ])
        .sort("bucket")
    )

    points = []
    for row in grouped.to_dicts():
        revenue = row["revenue"] or 0.0
        orders = int(row["orders"] or 0)
        customers = int(row["distinct_customers"] or 0) + int(row["customer_count"] or 0)
        points.append(TimeSeriesPoint(
            date=row["bucket"],
            label=bucket_label(row["bucket"], granularity),
            revenue=round(revenue, 2),
            orders=orders,
            customers=customers,
            avg_order_value=round(safe_divide(revenue, orders), 2),
            ordering_rate=round(safe_divide(orders, customers) * 100, 2),
        ))
    return points


# =============================================================================
# BREAKDOWNS
# =============================================================================

def breakdown(records: Iterable[RevenueRecord], dimension: str = "channel") -> List[BreakdownRow]:
    """
    Revenue share per channel or customer segment.

    Missing labels become "Direct" (channel) or "Unknown" (segment).
    Percentages are of the breakdown's total revenue, rounded to one
    decimal place; rows are sorted by revenue, highest first.
    """
    if dimension not in DEFAULT_LABELS:
        raise ValueError(f"Unknown breakdown dimension: {dimension}")
    default = DEFAULT_LABELS[dimension]

    columns: Dict[str, list] = {"name": [], "revenue": [], "orders": [], "customer_id": [], "customer_count": []}
    for record in records:
        label = record.channel if dimension == "channel" else record.customer_segment
        columns["name"].append(label or default)
        columns["revenue"].append(record.revenue or 0.0)
        columns["orders"].append(record.orders or 0)
        columns["customer_id"].append(record.customer_id)
        columns["customer_count"].append(record.customer_count or 0)

    if not columns["name"]:
        return []

    df = _frame(columns, {
        "name": pl.Utf8,
        "revenue": pl.Float64,
        "orders": pl.Int64,
        "customer_id": pl.Utf8,
        "customer_count": pl.Int64,
    })
    total_revenue = df["revenue"].sum() or 0.0

    grouped = (
        df.group_by("name")
        .agg([
            pl.col("revenue").sum().alias("revenue"),
            pl.col("orders").sum().alias("orders"),
            pl.col("customer_id").drop_nulls().n_unique().alias("distinct_customers"),
            pl.col("customer_count").sum().alias("customer_count"),
        ])
        .sort(["revenue", "name"], descending=[True, False])
    )

    rows = []
    for index, row in enumerate(grouped.to_dicts()):
        revenue = row["revenue"] or 0.0
        rows.append(BreakdownRow(
            name=row["name"],
            revenue=round(revenue, 2),
            orders=int(row["orders"] or 0),
            customers=int(row["distinct_customers"] or 0) + int(row["customer_count"] or 0),
            percentage=round(safe_divide(revenue, total_revenue) * 100, 1) if total_revenue > 0 else 0.0,
            color=palette_color(index),
        ))
    return rows


# =============================================================================
# TOP-N
# =============================================================================

def _line_item_frame(items: Iterable[LineItemRow]) -> Optional[pl.DataFrame]:
    columns: Dict[str, list] = {
        "order_id": [], "product_id": [], "product_name": [], "category": [],
        "customer_id": [], "customer_name": [], "quantity": [], "revenue": [], "day": [],
    }
    for item in items:
        columns["order_id"].append(item.order_id)
        columns["product_id"].append(item.product_id)
        columns["product_name"].append(item.product_name)
        columns["category"].append(item.category)
        columns["customer_id"].append(item.customer_id)
        columns["customer_name"].append(item.customer_name)
        columns["quantity"].append(item.quantity or 0)
        columns["revenue"].append(item.revenue)
        columns["day"].append(bucket_key(item.created_at, Granularity.DAILY))

    if not columns["order_id"]:
        return None

    return _frame(columns, {
        "order_id": pl.Utf8,
        "product_id": pl.Utf8,
        "product_name": pl.Utf8,
        "category": pl.Utf8,
        "customer_id": pl.Utf8,
        "customer_name": pl.Utf8,
        "quantity": pl.Int64,
        "revenue": pl.Float64,
        "day": pl.Utf8,
    })


def top_products(items: Iterable[LineItemRow], limit: int = 10) -> List[TopProduct]:
    """Products ranked by line-item revenue."""
    df = _line_item_frame(items)
    if df is None:
        return []

    ranked = (
        df.group_by("product_id")
        .agg([
            pl.col("product_name").drop_nulls().first().alias("name"),
            pl.col("category").drop_nulls().first().alias("category"),
            pl.col("revenue").sum().alias("revenue"),
            pl.col("quantity").sum().alias("quantity"),
            pl.col("order_id").n_unique().alias("orders"),
        ])
        .sort(["revenue", "product_id"], descending=[True, False])
        .head(limit)
    )

    return [
        TopProduct(
            product_id=row["product_id"],
            name=row["name"] or "Unknown Product",
            category=row["category"],
            revenue=round(row["revenue"] or 0.0, 2),
            quantity=int(row["quantity"] or 0),
            orders=int(row["orders"] or 0),
        )
        for row in ranked.to_dicts()
    ]


def top_customers(items: Iterable[LineItemRow], limit: int = 10) -> List[TopCustomer]:
    """Customers ranked by line-item revenue; guest orders are ignored."""
    df = _line_item_frame(items)
    if df is None:
        return []

    ranked = (
        df.filter(pl.col("customer_id").is_not_null())
        .group_by("customer_id")
        .agg([
            pl.col("customer_name").drop_nulls().first().alias("name"),
            pl.col("revenue").sum().alias("revenue"),
            pl.col("quantity").sum().alias("quantity"),
            pl.col("order_id").n_unique().alias("orders"),
        ])
        .sort(["revenue", "customer_id"], descending=[True, False])
        .head(limit)
    )

    return [
        TopCustomer(
            customer_id=row["customer_id"],
            name=row["name"] or "Unknown",
            revenue=round(row["revenue"] or 0.0, 2),
            quantity=int(row["quantity"] or 0),
            orders=int(row["orders"] or 0),
        )
        for row in ranked.to_dicts()
    ]


# =============================================================================
# PRODUCT PERFORMANCE
# =============================================================================

UNCATEGORIZED = "Uncategorized"


def performance_score(revenue: float, units: int) -> float:
    """Revenue and volume blended onto a 0-100 scale."""
    return min(100.0, revenue / 1000 * 20 + units / 10 * 10)


def _product_totals(df: pl.DataFrame) -> pl.DataFrame:
    return (
        df.group_by("product_id")
        .agg([
            pl.col("product_name").drop_nulls().first().alias("name"),
            pl.col("category").drop_nulls().first().alias("category"),
            pl.col("revenue").sum().alias("revenue"),
            pl.col("quantity").sum().alias("units"),
            pl.col("order_id").n_unique().alias("orders"),
        ])
        .with_columns(pl.col("category").fill_null(UNCATEGORIZED))
        .sort(["revenue", "product_id"], descending=[True, False])
    )


def _category_performance(totals: pl.DataFrame, total_revenue: float) -> List[CategoryPerformance]:
    grouped = (
        totals.group_by("category")
        .agg([
            pl.col("revenue").sum().alias("revenue"),
            pl.col("units").sum().alias("units"),
            pl.col("product_id").count().alias("products"),
        ])
        .sort(["revenue", "category"], descending=[True, False])
    )
    return [
        CategoryPerformance(
            category=row["category"],
            revenue=round(row["revenue"] or 0.0, 2),
            units_sold=int(row["units"] or 0),
            products=int(row["products"] or 0),
            percentage=round(safe_divide(row["revenue"] or 0.0, total_revenue) * 100, 1) if total_revenue > 0 else 0.0,
            color=palette_color(index),
        )
        for index, row in enumerate(grouped.to_dicts())
    ]


def _product_trend(df: pl.DataFrame, names: Dict[str, str]) -> List[ProductTrendPoint]:
    if not names:
        return []
    daily = (
        df.filter(pl.col("product_id").is_in(list(names)) & pl.col("day").is_not_null())
        .group_by(["day", "product_id"])
        .agg([
            pl.col("revenue").sum().alias("revenue"),
            pl.col("quantity").sum().alias("units"),
        ])
        .sort(["day", "product_id"])
    )
    return [
        ProductTrendPoint(
            date=row["day"],
            product_id=row["product_id"],
            name=names[row["product_id"]],
            revenue=round(row["revenue"] or 0.0, 2),
            units_sold=int(row["units"] or 0),
        )
        for row in daily.to_dicts()
    ]


def product_performance(
    current_items: Iterable[LineItemRow],
    previous_items: Optional[Iterable[LineItemRow]] = None,
    trend_limit: int = 5,
) -> ProductPerformanceReport:
    """
    Per-product, per-category and daily sales for a window.

    Each product's growth compares its revenue with ``previous_items``; a
    product that sold nothing before grows 100% when it sells now. Growth
    and previous totals are None when no previous window is supplied.
    Products without a category are grouped under "Uncategorized". The
    trend covers the ``trend_limit`` highest-revenue products, one point
    per product per day.
    """
    has_previous = previous_items is not None
    current = _line_item_frame(current_items)
    previous = _line_item_frame(previous_items) if has_previous else None

    previous_revenue: Dict[str, float] = {}
    previous_units = 0
    if previous is not None:
        for row in _product_totals(previous).to_dicts():
            previous_revenue[row["product_id"]] = row["revenue"] or 0.0
        previous_units = int(previous["quantity"].sum() or 0)

    products: List[ProductPerformance] = []
    categories: List[CategoryPerformance] = []
    trend: List[ProductTrendPoint] = []
    total_revenue = 0.0
    total_units = 0

    if current is not None:
        totals = _product_totals(current)
        for row in totals.to_dicts():
            revenue = row["revenue"] or 0.0
            units = int(row["units"] or 0)
            before = previous_revenue.get(row["product_id"], 0.0) if has_previous else None
            products.append(ProductPerformance(
                product_id=row["product_id"],
                name=row["name"] or "Unknown Product",
                category=row["category"],
                revenue=round(revenue, 2),
                units_sold=units,
                orders=int(row["orders"] or 0),
                avg_price=round(safe_divide(revenue, units), 2),
                previous_revenue=round(before, 2) if before is not None else None,
                growth_rate=round(calculate_change(revenue, before), 1) if before is not None else None,
                performance_score=round(performance_score(revenue, units), 1),
            ))
        total_revenue = current["revenue"].sum() or 0.0
        total_units = int(current["quantity"].sum() or 0)
        categories = _category_performance(totals, total_revenue)
        trend = _product_trend(current, {p.product_id: p.name for p in products[:trend_limit]})

    previous_total = sum(previous_revenue.values())
    summary = ProductPerformanceSummary(
        total_products=len(products),
        total_revenue=round(total_revenue, 2),
        total_units_sold=total_units,
        previous_total_products=len(previous_revenue) if has_previous else None,
        previous_total_revenue=round(previous_total, 2) if has_previous else None,
        previous_total_units_sold=previous_units if has_previous else None,
        revenue_growth=round(calculate_change(total_revenue, previous_total), 1) if has_previous else None,
    )
    return ProductPerformanceReport(products=products, categories=categories, trend=trend, summary=summary)


# =============================================================================
# HOUR OF DAY
# =============================================================================

def hourly_distribution(orders: Iterable[OrderRow]) -> List[HourlyPoint]:
    """Order count and revenue for each of the 24 hours of the day."""
    counts = [0] * 24
    revenue = [0.0] * 24

    for order in orders:
        ts = parse_timestamp(order.created_at)
        if ts is None:
            logger.warning("Skipping order with invalid date", order_id=order.id)
            continue
        counts[ts.hour] += 1
        revenue[ts.hour] += order.total_price or 0.0

    total = sum(counts)
    return [
        HourlyPoint(
            hour=hour,
            label=f"{hour:02d}:00",
            orders=counts[hour],
            revenue=round(revenue[hour], 2),
            percentage=round(safe_divide(counts[hour], total) * 100, 1),
        )
        for hour in range(24)
    ]


def busiest_hours(points: Sequence[HourlyPoint], count: int = 3) -> List[HourlyPoint]:
    active = [p for p in points if p.orders > 0]
    return sorted(active, key=lambda p: (-p.orders, p.hour))[:count]


def quietest_hours(points: Sequence[HourlyPoint], count: int = 3) -> List[HourlyPoint]:
    return sorted(points, key=lambda p: (p.orders, p.hour))[:count]


# =============================================================================
# COHORTS
# =============================================================================

def month_offset(start: datetime, later: datetime) -> int:
    return (later.year - start.year) * 12 + (later.month - start.month)


def _cohort_frame(
    customers: Iterable[CustomerRow],
    orders: Iterable[OrderRow],
) -> Tuple[Dict[str, int], Optional[pl.DataFrame]]:
    """Cohort sizes and a frame of (cohort, customer_id, offset, total) per order."""
    signup: Dict[str, datetime] = {}
    cohort_sizes: Dict[str, int] = {}

    for customer in customers:
        created = parse_timestamp(customer.created_at)
        if created is None:
            logger.warning("Skipping customer with invalid signup date", customer_id=customer.id)
            continue
        signup[customer.id] = created
        cohort = f"{created.year:04d}-{created.month:02d}"
        cohort_sizes[cohort] = cohort_sizes.get(cohort, 0) + 1

    columns: Dict[str, list] = {"cohort": [], "customer_id": [], "offset": [], "total": []}
    for order in orders:
        if order.customer_id not in signup:
            continue
        ordered_at = parse_timestamp(order.created_at)
        if ordered_at is None:
            logger.warning("Skipping order with invalid date", order_id=order.id)
            continue
        created = signup[order.customer_id]
        offset = month_offset(created, ordered_at)
        if offset < 0:
            logger.warning(
                "Order precedes customer signup month",
                order_id=order.id,
                customer_id=order.customer_id,
            )
            continue
        columns["cohort"].append(f"{created.year:04d}-{created.month:02d}")
        columns["customer_id"].append(order.customer_id)
        columns["offset"].append(offset)
        columns["total"].append(order.total_price or 0.0)

    if not columns["cohort"]:
        return cohort_sizes, None

    df = _frame(columns, {
        "cohort": pl.Utf8,
        "customer_id": pl.Utf8,
        "offset": pl.Int64,
        "total": pl.Float64,
    })
    grouped = df.group_by(["cohort", "offset"]).agg([
        pl.col("total").sum().alias("income"),
        pl.col("customer_id").n_unique().alias("active"),
    ])
    return cohort_sizes, grouped


def _cohort_cells(grouped: Optional[pl.DataFrame]) -> Dict[str, Dict[int, Dict[str, float]]]:
    cells: Dict[str, Dict[int, Dict[str, float]]] = {}
    if grouped is None:
        return cells
    for row in grouped.to_dicts():
        cells.setdefault(row["cohort"], {})[row["offset"]] = {
            "income": row["income"] or 0.0,
            "active": row["active"] or 0,
        }
    return cells


def cohort_income(customers: Iterable[CustomerRow], orders: Iterable[OrderRow]) -> List[CohortIncomePoint]:
    """
    Average cumulative income per cohort member by month offset.

    A cohort is the signup month of its customers; offset 0 is the signup
    month itself and the curve runs to the cohort's last observed offset.
    """
    cohort_sizes, grouped = _cohort_frame(customers, orders)
    cells = _cohort_cells(grouped)

    points = []
    for cohort in sorted(cohort_sizes):
        size = cohort_sizes[cohort]
        cohort_cells = cells.get(cohort, {})
        max_offset = max(cohort_cells) if cohort_cells else 0
        cumulative = 0.0
        for m in range(max_offset + 1):
            cumulative += cohort_cells.get(m, {}).get("income", 0.0)
            points.append(CohortIncomePoint(
                cohort_month=cohort,
                month_index=m,
                cohort_size=size,
                avg_income=round(safe_divide(cumulative, size), 2),
            ))
    return points


def cohort_retention(customers: Iterable[CustomerRow], orders: Iterable[OrderRow]) -> List[CohortRetentionPoint]:
    """
    Percentage of each cohort ordering at exactly each month offset.
    """
    cohort_sizes, grouped = _cohort_frame(customers, orders)
    cells = _cohort_cells(grouped)

    points = []
    for cohort in sorted(cohort_sizes):
        size = cohort_sizes[cohort]
        cohort_cells = cells.get(cohort, {})
        max_offset = max(cohort_cells) if cohort_cells else 0
        for m in range(max_offset + 1):
            active = int(cohort_cells.get(m, {}).get("active", 0))
            points.append(CohortRetentionPoint(
                cohort_month=cohort,
                month_index=m,
                cohort_size=size,
                active_customers=active,
                retention_rate=round(safe_divide(active, size) * 100, 1),
            ))
    return points


def cohort_retention_table(points: Iterable[CohortRetentionPoint]) -> List[CohortRetentionRow]:
    """Pivot retention points into one row per cohort."""
    rows: Dict[str, CohortRetentionRow] = {}
    for point in points:
        row = rows.get(point.cohort_month)
        if row is None:
            row = CohortRetentionRow(cohort_month=point.cohort_month, cohort_size=point.cohort_size, retention={})
            rows[point.cohort_month] = row
        row.retention[point.month_index] = point.retention_rate
    return [rows[key] for key in sorted(rows)]


# =============================================================================
# RETURNS
# =============================================================================

def returned_products(refunds: Iterable[RefundRow], items: Iterable[LineItemRow]) -> ReturnsReport:
    """
    Refunds grouped per product.

    Each refund row counts as one return. Return rate is returns per unit
    sold in the same window, as a percentage.
    """
    units_sold: Dict[str, int] = {}
    for item in items:
        units_sold[item.product_id] = units_sold.get(item.product_id, 0) + (item.quantity or 0)

    grouped: Dict[str, Dict[str, Any]] = {}
    for refund in refunds:
        product_id = refund.product_id or "unknown"
        entry = grouped.setdefault(product_id, {
            "name": refund.product_name,
            "category": refund.category,
            "count": 0,
            "value": 0.0,
            "reasons": {},
        })
        entry["count"] += 1
        entry["value"] += refund.amount or 0.0
        reason = refund.reason or "Unknown"
        reason_entry = entry["reasons"].setdefault(reason, {"count": 0, "value": 0.0})
        reason_entry["count"] += 1
        reason_entry["value"] += refund.amount or 0.0

    products = []
    for product_id, entry in grouped.items():
        count = entry["count"]
        reasons = sorted(
            (
                ReturnReason(
                    reason=reason,
                    count=data["count"],
                    total_value=round(data["value"], 2),
                    percentage=round(safe_divide(data["count"], count) * 100, 1),
                )
                for reason, data in entry["reasons"].items()
            ),
            key=lambda r: (-r.count, r.reason),
        )
        products.append(ReturnedProduct(
            product_id=product_id,
            name=entry["name"] or "Unknown Product",
            category=entry["category"],
            total_returns=count,
            total_return_value=round(entry["value"], 2),
            avg_return_value=round(safe_divide(entry["value"], count), 2),
            return_rate=round(safe_divide(count, units_sold.get(product_id, 0)) * 100, 1),
            reasons=reasons,
        ))

    products.sort(key=lambda p: (-p.total_returns, p.product_id))
    return ReturnsReport(
        products=products,
        total_returns=sum(p.total_returns for p in products),
        total_return_value=round(sum(p.total_return_value for p in products), 2),
        avg_return_rate=round(safe_divide(sum(p.return_rate for p in products), len(products)), 1),
    )
