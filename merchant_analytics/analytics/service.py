"""
Analytics Service

Request-scoped orchestration: fetch rows for a filter, aggregate them and
shape the outputs the dashboard consumes. Independent fetches run
concurrently; every fetch failure degrades to an empty or zeroed result.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import structlog

from merchant_analytics.config import AnalyticsSettings, get_settings
from . import aggregations, customers as customer_scoring
from .comparison import calculate_change, compare, growth_driver
from .insights import generate_sales_insights
from .merchant_settings import MerchantSettings, currency_symbol
from .ranges import build_filter_state, previous_period, previous_year, resolve_range
from .rows import CustomerRow, OrderRow, to_naive_utc
from .schemas import (
    BreakdownRow,
    BusinessSegmentation,
    ChurnOverview,
    CohortIncomePoint,
    CohortRetentionPoint,
    CohortRetentionRow,
    Dashboard,
    FilterState,
    Granularity,
    HourlyPoint,
    KPIComparisonReport,
    KPISet,
    ProductPerformanceReport,
    ReturnsReport,
    RiskLevel,
    SalesAnalysis,
    TimeSeriesPoint,
    TopCustomer,
    TopProduct,
)
from .sources import FetchResult, RowSource

logger = structlog.get_logger(__name__)

COMPARISON_MODES = ("previous_period", "previous_year")

# Lower bound for order history reads
HISTORY_START = datetime(1970, 1, 1)


def compute_kpis(
    orders: Iterable[OrderRow],
    customers: Iterable[CustomerRow],
    filters: FilterState,
    churn_period_days: int,
    now: datetime,
    history: Optional[Iterable[OrderRow]] = None,
) -> KPISet:
    """
    Headline KPIs for a window.

    ``percent_ordering`` is the share of customers on file at the window end
    who ordered inside the window. ``churn_risk`` is the share of those
    customers scored High risk as of the window end.

    Customers whose stored last order falls after the window end are scored
    from ``history`` (orders up to the window end), falling back to the
    window's own orders.
    """
    order_list = list(orders)
    revenue = sum(o.total_price or 0.0 for o in order_list)
    order_count = len(order_list)
    ordering_customers = {o.customer_id for o in order_list if o.customer_id}

    orders_by_customer: Dict[str, List[OrderRow]] = defaultdict(list)
    for order in (order_list if history is None else history):
        if order.customer_id:
            orders_by_customer[order.customer_id].append(order)

    as_of = min(to_naive_utc(now), filters.end_date)
    on_file = 0
    new_customers = 0
    high_risk = 0
    for customer in customers:
        created = aggregations.parse_timestamp(customer.created_at)
        if created is not None and created > filters.end_date:
            continue
        on_file += 1
        if created is not None and created >= filters.start_date:
            new_customers += 1
        snapshot = customer_scoring.customer_as_of(customer, orders_by_customer.get(customer.id, []), as_of)
        score = customer_scoring.score_customer(snapshot, churn_period_days, as_of)
        if score.risk_level == RiskLevel.HIGH:
            high_risk += 1

    return KPISet(
        total_revenue=round(revenue, 2),
        total_orders=order_count,
        avg_order_value=round(aggregations.safe_divide(revenue, order_count), 2),
        percent_ordering=round(aggregations.safe_divide(len(ordering_customers), on_file) * 100, 1),
        new_customers=new_customers,
        churn_risk=round(aggregations.safe_divide(high_risk, on_file) * 100, 1),
    )


class AnalyticsService:
    """
    Dashboard analytics for one merchant.

    Example:
        service = AnalyticsService(RowSource(TenantScope(merchant_id)), settings)
        filters = service.resolve_filters("last30days")
        dashboard = await service.get_dashboard(filters)
    """

    def __init__(
        self,
        source: RowSource,
        merchant_settings: Optional[MerchantSettings] = None,
        now: Optional[datetime] = None,
        config: Optional[AnalyticsSettings] = None,
    ):
        self.source = source
        self.settings = merchant_settings or MerchantSettings.defaults(source.scope.merchant_id)
        self.config = config or get_settings().analytics
        self._now = now
        self.warnings: List[str] = []

    @property
    def now(self) -> datetime:
        """Current wall-clock time in the merchant's timezone."""
        if self._now is not None:
            return self._now
        return datetime.now(self.settings.tzinfo).replace(tzinfo=None)

    def resolve_filters(
        self,
        timeframe: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        segment: Optional[str] = None,
        channel: Optional[str] = None,
        product: Optional[str] = None,
    ) -> FilterState:
        date_range = resolve_range(
            timeframe or self.settings.default_date_range,
            custom_start=start,
            custom_end=end,
            fiscal_year_start=self.settings.financial_year_start,
            fiscal_year_end=self.settings.financial_year_end,
            now=self.now,
        )
        return build_filter_state(date_range, segment=segment, channel=channel, product=product)

    def _checked(self, result: FetchResult, what: str) -> list:
        """Rows of ``result``; logs failures and records truncation warnings."""
        if not result.ok:
            logger.warning(
                "Fetch failed, returning empty result",
                what=what,
                merchant_id=self.source.scope.merchant_id,
                error=str(result.error),
            )
            return []
        if result.warning and result.warning not in self.warnings:
            self.warnings.append(result.warning)
        return result.rows

    # -------------------------------------------------------------------------
    # KPIs
    # -------------------------------------------------------------------------

    async def _kpis(self, filters: FilterState) -> Optional[KPISet]:
        orders_result, customers_result = await asyncio.gather(
            self.source.fetch_raw("orders", filters),
            self.source.fetch_raw("customers"),
        )
        if not orders_result.ok:
            self._checked(orders_result, "kpis")
            return None
        customers = self._checked(customers_result, "kpis")

        as_of = min(self.now, filters.end_date)
        history = None
        if any(self._ordered_after(c, as_of) for c in customers):
            history_result = await self.source.fetch_raw(
                "orders", FilterState(start_date=HISTORY_START, end_date=as_of),
            )
            history_rows = self._checked(history_result, "kpis")
            history = history_rows if history_result.ok else None

        return compute_kpis(
            self._checked(orders_result, "kpis"),
            customers,
            filters,
            self.settings.churn_period_days,
            self.now,
            history=history,
        )

    @staticmethod
    def _ordered_after(customer: CustomerRow, as_of: datetime) -> bool:
        last_order = aggregations.parse_timestamp(customer.last_order_date)
        return last_order is not None and last_order > as_of

    async def get_kpis(self, filters: FilterState) -> KPISet:
        return await self._kpis(filters) or KPISet()

    async def get_kpi_comparison(self, filters: FilterState, mode: str = "previous_period") -> KPIComparisonReport:
        """KPIs for ``filters`` against the previous period or the same window a year earlier."""
        if mode not in COMPARISON_MODES:
            raise ValueError(f"Unknown comparison mode: {mode}. Expected one of {COMPARISON_MODES}")

        current_range = filters.date_range
        previous_range = previous_period(current_range) if mode == "previous_period" else previous_year(current_range)

        current, previous = await asyncio.gather(
            self.get_kpis(filters),
            self.get_kpis(filters.with_range(previous_range)),
        )
        return KPIComparisonReport(
            mode=mode,
            current_range=current_range,
            previous_range=previous_range,
            comparison=compare(current, previous),
        )

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    async def get_revenue_time_series(
        self,
        filters: FilterState,
        granularity: Granularity = Granularity.DAILY,
    ) -> List[TimeSeriesPoint]:
        result = await self.source.fetch_revenue_rows(filters)
        return aggregations.rollup_time_series(self._checked(result, "revenue_time_series"), granularity)

    async def get_channel_breakdown(self, filters: FilterState) -> List[BreakdownRow]:
        result = await self.source.fetch_revenue_rows(filters)
        return aggregations.breakdown(self._checked(result, "channel_breakdown"), "channel")

    async def get_segment_breakdown(self, filters: FilterState) -> List[BreakdownRow]:
        result = await self.source.fetch_revenue_rows(filters)
        return aggregations.breakdown(self._checked(result, "segment_breakdown"), "segment")

    async def get_hourly_distribution(self, filters: FilterState) -> List[HourlyPoint]:
        result = await self.source.fetch_raw("orders", filters)
        return aggregations.hourly_distribution(self._checked(result, "hourly_distribution"))

    async def get_sales_analysis(
        self,
        filters: FilterState,
        granularity: Granularity = Granularity.DAILY,
    ) -> SalesAnalysis:
        """KPIs with growth against the previous period, the series, channels and insights."""
        previous_filters = filters.with_range(previous_period(filters.date_range))
        current, previous, series, channels = await asyncio.gather(
            self._kpis(filters),
            self._kpis(previous_filters),
            self.get_revenue_time_series(filters, granularity),
            self.get_channel_breakdown(filters),
        )

        revenue_growth = orders_growth = aov_growth = None
        if current is not None and previous is not None:
            revenue_growth = round(calculate_change(current.total_revenue, previous.total_revenue), 1)
            orders_growth = round(calculate_change(current.total_orders, previous.total_orders), 1)
            aov_growth = round(calculate_change(current.avg_order_value, previous.avg_order_value), 1)

        return SalesAnalysis(
            kpis=current or KPISet(),
            revenue_growth=revenue_growth,
            orders_growth=orders_growth,
            aov_growth=aov_growth,
            growth_driver=growth_driver(orders_growth, aov_growth),
            series=series,
            channels=channels,
            insights=generate_sales_insights(revenue_growth, orders_growth, aov_growth, series, channels),
        )

    # -------------------------------------------------------------------------
    # Products and customers
    # -------------------------------------------------------------------------

    async def get_top_products(self, filters: FilterState, limit: Optional[int] = None) -> List[TopProduct]:
        result = await self.source.fetch_raw("order_items", filters)
        return aggregations.top_products(self._checked(result, "top_products"), limit or self.config.top_n)

    async def get_top_customers(self, filters: FilterState, limit: Optional[int] = None) -> List[TopCustomer]:
        result = await self.source.fetch_raw("order_items", filters)
        return aggregations.top_customers(self._checked(result, "top_customers"), limit or self.config.top_n)

    async def get_product_performance(self, filters: FilterState) -> ProductPerformanceReport:
        """Product, category and daily sales for the window, with growth against the previous period."""
        previous_filters = filters.with_range(previous_period(filters.date_range))
        current, previous = await asyncio.gather(
            self.source.fetch_raw("order_items", filters),
            self.source.fetch_raw("order_items", previous_filters),
        )
        previous_items = self._checked(previous, "product_performance")
        return aggregations.product_performance(
            self._checked(current, "product_performance"),
            previous_items if previous.ok else None,
            trend_limit=self.config.product_trend_limit,
        )

    async def get_returned_products(self, filters: FilterState) -> ReturnsReport:
        refunds, items = await asyncio.gather(
            self.source.fetch_raw("refunds", filters),
            self.source.fetch_raw("order_items", filters),
        )
        return aggregations.returned_products(
            self._checked(refunds, "returned_products"),
            self._checked(items, "returned_products"),
        )

    async def _cohort_rows(self, filters: Optional[FilterState]):
        """Customers who signed up in the window and their orders from then on."""
        order_filters = None
        if filters is not None:
            order_filters = FilterState(
                start_date=filters.start_date,
                end_date=max(filters.end_date, self.now),
            )
        customers, orders = await asyncio.gather(
            self.source.fetch_raw("customers", filters),
            self.source.fetch_raw("orders", order_filters),
        )
        return self._checked(customers, "cohorts"), self._checked(orders, "cohorts")

    async def get_cohort_income(self, filters: Optional[FilterState] = None) -> List[CohortIncomePoint]:
        customers, orders = await self._cohort_rows(filters)
        return aggregations.cohort_income(customers, orders)

    async def get_cohort_retention(self, filters: Optional[FilterState] = None) -> List[CohortRetentionPoint]:
        customers, orders = await self._cohort_rows(filters)
        return aggregations.cohort_retention(customers, orders)

    async def get_cohort_retention_table(self, filters: Optional[FilterState] = None) -> List[CohortRetentionRow]:
        return aggregations.cohort_retention_table(await self.get_cohort_retention(filters))

    async def get_churn_overview(self) -> ChurnOverview:
        """Churn scores for every customer, with a summary and LTV bands."""
        result = await self.source.fetch_raw("customers")
        customers = self._checked(result, "churn_overview")
        scores = customer_scoring.score_customers(customers, self.settings.churn_period_days, self.now)
        return ChurnOverview(
            summary=customer_scoring.churn_summary(scores),
            customers=scores,
            ltv_distribution=customer_scoring.ltv_distribution(customers, currency_symbol(self.settings.currency)),
        )

    async def get_business_segments(self, filters: FilterState) -> BusinessSegmentation:
        customers, orders = await asyncio.gather(
            self.source.fetch_raw("customers"),
            self.source.fetch_raw("orders", filters),
        )
        return customer_scoring.business_segments(
            self._checked(customers, "business_segments"),
            self._checked(orders, "business_segments"),
            self.now,
        )

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    async def get_dashboard(
        self,
        filters: FilterState,
        granularity: Granularity = Granularity.DAILY,
        include_comparison: bool = True,
    ) -> Dashboard:
        """Every dashboard slot, fetched concurrently."""
        comparison_task = self.get_kpi_comparison(filters) if include_comparison else asyncio.sleep(0)
        (
            kpis,
            comparison,
            series,
            channels,
            segments,
            products,
            top_customers,
            hourly,
        ) = await asyncio.gather(
            self.get_kpis(filters),
            comparison_task,
            self.get_revenue_time_series(filters, granularity),
            self.get_channel_breakdown(filters),
            self.get_segment_breakdown(filters),
            self.get_top_products(filters),
            self.get_top_customers(filters),
            self.get_hourly_distribution(filters),
        )

        logger.info(
            "Dashboard assembled",
            merchant_id=self.source.scope.merchant_id,
            series_points=len(series),
            warnings=len(self.warnings),
        )

        return Dashboard(
            filters=filters,
            kpis=kpis,
            comparison=comparison.comparison if comparison is not None else None,
            revenue_series=series,
            channels=channels,
            segments=segments,
            top_products=products,
            top_customers=top_customers,
            hourly=hourly,
            warnings=list(self.warnings),
        )
