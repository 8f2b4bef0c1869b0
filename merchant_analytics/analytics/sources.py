"""
Row Sources

Fetches tenant-scoped rows from the backing store with two tiers:

1. Summary tier: the precomputed ``daily_revenue_summary`` table, bounded
   by date. Errors and empty results mark it unavailable.
2. Raw tier: the transactional tables, bounded by full timestamp and read
   in fixed-size pages until a short page or the row cap.

Accessors never raise on query failure. They return a ``FetchResult``
carrying either rows or a ``FetchError`` so callers always receive a
concrete (possibly empty) row set.
"""

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import structlog
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_analytics.config import AnalyticsSettings, get_settings
from merchant_analytics.database.connection import get_read_db
from merchant_analytics.database.models import (
    Customer,
    DailyRevenueSummary,
    Order,
    OrderItem,
    Product,
    Refund,
)
from .exceptions import FetchError, TenantScopeError
from .rows import (
    CustomerRow,
    LineItemRow,
    OrderRow,
    RefundRow,
    RevenueRecord,
    SourceTier,
    SummaryRow,
    to_revenue_record,
)
from .schemas import FilterState

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ROW_CAP_WARNING = "Data may be truncated. Showing the first {rows} rows (row cap reached)."

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@dataclass
class FetchResult(Generic[T]):
    """Outcome of a row-source query"""
    rows: List[T] = field(default_factory=list)
    tier: SourceTier = SourceTier.RAW
    error: Optional[FetchError] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def truncated(self) -> bool:
        return self.warning is not None

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class TenantScope:
    """
    Tenant restriction applied to every statement.

    A scope without a merchant id is only valid in admin mode, which must be
    requested explicitly through ``all_tenants``.
    """
    merchant_id: Optional[str]
    all_tenants: bool = False

    def __post_init__(self):
        if not self.merchant_id and not self.all_tenants:
            raise TenantScopeError("merchant_id is required unless admin mode is enabled")

    @classmethod
    def admin(cls, config: Optional[AnalyticsSettings] = None) -> "TenantScope":
        config = config or get_settings().analytics
        if not config.allow_all_tenants:
            raise TenantScopeError("Cross-tenant queries are disabled")
        return cls(merchant_id=None, all_tenants=True)

    def apply(self, stmt: Select, column) -> Select:
        if self.all_tenants:
            return stmt
        return stmt.where(column == self.merchant_id)


async def fetch_with_retry(
    factory: Callable[[], Awaitable[T]],
    retries: int = 2,
    timeout: float = 10.0,
    label: str = "query",
) -> T:
    """
    Await ``factory()`` with a per-attempt timeout.

    Makes ``retries`` extra attempts immediately after a failure, then
    re-raises the last error.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(retries + 1):
        try:
            return await asyncio.wait_for(factory(), timeout=timeout)
        except Exception as e:
            last_error = e
            logger.warning(
                "Query attempt failed",
                query=label,
                attempt=attempt + 1,
                max_attempts=retries + 1,
                error=str(e) or type(e).__name__,
            )
    raise last_error


class RowSource:
    """
    Tenant-scoped accessor for summary and raw rows.

    Each query opens its own session, so several fetches may run
    concurrently under ``asyncio.gather``.

    Example:
        source = RowSource(TenantScope("merchant-1"))
        result = await source.fetch_revenue_rows(filters)
    """

    RAW_TABLES = ("orders", "customers", "order_items", "refunds")

    def __init__(
        self,
        scope: TenantScope,
        session_factory: SessionFactory = get_read_db,
        config: Optional[AnalyticsSettings] = None,
    ):
        self.scope = scope
        self.session_factory = session_factory
        self.config = config or get_settings().analytics

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _execute(self, stmt: Select) -> List[Any]:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def _paginate(self, table: str, stmt: Select, mapper: Callable[[Any], T]) -> FetchResult[T]:
        rows: List[T] = []
        offset = 0
        page_size = self.config.page_size
        max_rows = self.config.max_rows

        while len(rows) < max_rows:
            limit = min(page_size, max_rows - len(rows))
            page = await fetch_with_retry(
                partial(self._execute, stmt.offset(offset).limit(limit)),
                retries=self.config.query_retries,
                timeout=self.config.query_timeout_seconds,
                label=table,
            )
            rows.extend(mapper(row) for row in page)
            if len(page) < limit:
                break
            offset += len(page)

        warning = None
        if len(rows) >= max_rows:
            warning = ROW_CAP_WARNING.format(rows=len(rows))
        elif len(rows) == page_size:
            warning = f"Data may be truncated. Showing {len(rows)} rows, which matches the page size."
        if warning:
            logger.warning("Possible truncated result", table=table, rows=len(rows), page_size=page_size)

        return FetchResult(rows=rows, tier=SourceTier.RAW, warning=warning)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _orders_query(self, filters: Optional[FilterState]) -> Select:
        stmt = self.scope.apply(select(Order), Order.merchant_id)
        if filters is not None:
            stmt = stmt.where(Order.created_at >= filters.start_date, Order.created_at <= filters.end_date)
            if filters.channel:
                stmt = stmt.where(Order.channel == filters.channel)
            if filters.segment:
                stmt = stmt.where(Order.customer_segment == filters.segment)
            if filters.product:
                stmt = stmt.where(
                    Order.id.in_(select(OrderItem.order_id).where(OrderItem.product_id == filters.product))
                )
        return stmt.order_by(Order.created_at, Order.id)

    def _customers_query(self, filters: Optional[FilterState]) -> Select:
        stmt = self.scope.apply(select(Customer), Customer.merchant_id)
        if filters is not None:
            stmt = stmt.where(Customer.created_at >= filters.start_date, Customer.created_at <= filters.end_date)
            if filters.segment:
                stmt = stmt.where(Customer.customer_segment == filters.segment)
        return stmt.order_by(Customer.created_at, Customer.id)

    def _order_items_query(self, filters: Optional[FilterState]) -> Select:
        stmt = (
            select(OrderItem, Order, Product, Customer)
            .join(Order, OrderItem.order_id == Order.id)
            .outerjoin(Product, OrderItem.product_id == Product.id)
            .outerjoin(Customer, Order.customer_id == Customer.id)
        )
        stmt = self.scope.apply(stmt, Order.merchant_id)
        if filters is not None:
            stmt = stmt.where(Order.created_at >= filters.start_date, Order.created_at <= filters.end_date)
            if filters.channel:
                stmt = stmt.where(Order.channel == filters.channel)
            if filters.segment:
                stmt = stmt.where(Order.customer_segment == filters.segment)
            if filters.product:
                stmt = stmt.where(OrderItem.product_id == filters.product)
        return stmt.order_by(Order.created_at, OrderItem.id)

    def _refunds_query(self, filters: Optional[FilterState]) -> Select:
        stmt = select(Refund, Product).outerjoin(Product, Refund.product_id == Product.id)
        stmt = self.scope.apply(stmt, Refund.merchant_id)
        if filters is not None:
            stmt = stmt.where(Refund.created_at >= filters.start_date, Refund.created_at <= filters.end_date)
            if filters.product:
                stmt = stmt.where(Refund.product_id == filters.product)
        return stmt.order_by(Refund.created_at, Refund.id)

    def _raw_query(self, table: str):
        queries: Dict[str, tuple] = {
            "orders": (self._orders_query, lambda row: OrderRow.from_model(row[0])),
            "customers": (self._customers_query, lambda row: CustomerRow.from_model(row[0])),
            "order_items": (
                self._order_items_query,
                lambda row: LineItemRow.from_result(row[0], row[1], row[2], row[3]),
            ),
            "refunds": (self._refunds_query, lambda row: RefundRow.from_result(row[0], row[1])),
        }
        if table not in queries:
            raise ValueError(f"Unknown table: {table}. Expected one of {self.RAW_TABLES}")
        return queries[table]

    # -------------------------------------------------------------------------
    # Public accessors
    # -------------------------------------------------------------------------

    async def fetch_summary(self, filters: FilterState) -> FetchResult[SummaryRow]:
        """
        Read the daily summary table, bounded by date.

        Errors are returned on the result rather than raised; an empty row
        list means the summary has nothing for this window.
        """
        stmt = self.scope.apply(select(DailyRevenueSummary), DailyRevenueSummary.merchant_id)
        stmt = stmt.where(
            DailyRevenueSummary.date >= filters.start_date.date(),
            DailyRevenueSummary.date <= filters.end_date.date(),
        )
        if filters.channel:
            stmt = stmt.where(DailyRevenueSummary.channel == filters.channel)
        if filters.segment:
            stmt = stmt.where(DailyRevenueSummary.customer_segment == filters.segment)
        stmt = stmt.order_by(DailyRevenueSummary.date).limit(self.config.max_rows)

        try:
            rows = await asyncio.wait_for(self._execute(stmt), timeout=self.config.query_timeout_seconds)
        except Exception as e:
            return FetchResult(tier=SourceTier.SUMMARY, error=FetchError("daily_revenue_summary", e))

        summary_rows = [SummaryRow.from_model(row[0]) for row in rows]
        warning = None
        if len(summary_rows) >= self.config.max_rows:
            warning = ROW_CAP_WARNING.format(rows=len(summary_rows))
            logger.warning(
                "Possible truncated result",
                table="daily_revenue_summary",
                rows=len(summary_rows),
                max_rows=self.config.max_rows,
            )

        return FetchResult(rows=summary_rows, tier=SourceTier.SUMMARY, warning=warning)

    async def fetch_raw(self, table: str, filters: Optional[FilterState] = None) -> FetchResult:
        """
        Read a transactional table with pagination.

        Args:
            table: One of ``orders``, ``customers``, ``order_items``, ``refunds``
            filters: Timestamp bounds and dimension filters; None reads
                every row for the tenant

        Returns:
            FetchResult with typed rows, or with ``error`` set on failure
        """
        build, mapper = self._raw_query(table)
        try:
            return await self._paginate(table, build(filters), mapper)
        except Exception as e:
            error = FetchError(table, e)
            logger.error(
                "Raw fetch failed",
                table=table,
                merchant_id=self.scope.merchant_id,
                error=str(error),
            )
            return FetchResult(tier=SourceTier.RAW, error=error)

    async def fetch_revenue_rows(self, filters: FilterState) -> FetchResult[RevenueRecord]:
        """
        Revenue records for a window, summary tier first.

        The summary tier has no product dimension, so a product filter goes
        straight to the orders table.
        """
        if filters.product is None:
            summary = await self.fetch_summary(filters)
            if summary.ok and summary.rows:
                return FetchResult(
                    rows=[to_revenue_record(row) for row in summary.rows],
                    tier=SourceTier.SUMMARY,
                    warning=summary.warning,
                )
            logger.info(
                "Summary tier unavailable, falling back to orders",
                merchant_id=self.scope.merchant_id,
                reason=str(summary.error) if summary.error else "empty",
            )

        raw = await self.fetch_raw("orders", filters)
        if not raw.ok:
            return FetchResult(tier=SourceTier.RAW, error=raw.error)
        return FetchResult(
            rows=[to_revenue_record(row) for row in raw.rows],
            tier=SourceTier.RAW,
            warning=raw.warning,
        )
