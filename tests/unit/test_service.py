"""
Unit Tests - Analytics Service
"""
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

import pytest

from merchant_analytics.analytics.merchant_settings import MerchantSettings
from merchant_analytics.analytics.rows import CustomerRow, OrderRow
from merchant_analytics.analytics.schemas import FilterState, Granularity, RiskLevel, Trend
from merchant_analytics.analytics.service import AnalyticsService, compute_kpis
from merchant_analytics.analytics.sources import RowSource, TenantScope
from merchant_analytics.config import AnalyticsSettings

MERCHANT_ID = "merchant-1"
NOW = datetime(2024, 6, 15, 12, 0, 0)

JANUARY = FilterState(
    start_date=datetime(2024, 1, 1),
    end_date=datetime(2024, 1, 31, 23, 59, 59, 999000),
)


@asynccontextmanager
async def broken_session():
    raise RuntimeError("connection refused")
    yield


def make_service(session_factory, merchant_settings=None, **config) -> AnalyticsService:
    settings = AnalyticsSettings(**{"query_timeout_seconds": 5, "query_retries": 0, **config})
    source = RowSource(TenantScope(MERCHANT_ID), session_factory=session_factory, config=settings)
    return AnalyticsService(
        source,
        merchant_settings or MerchantSettings.defaults(MERCHANT_ID, config=settings),
        now=NOW,
        config=settings,
    )


@pytest.fixture
async def store(seeder):
    """One merchant with three customers, four orders and a refund"""
    await seeder.customer(
        "cust-1", datetime(2024, 1, 10), first_name="John", last_name="Doe",
        first_order_date=datetime(2024, 1, 12), last_order_date=datetime(2024, 1, 20),
        total_orders=2, total_spent=Decimal("150.00"),
    )
    await seeder.customer(
        "cust-2", datetime(2023, 5, 1), first_name="Jane", last_name="Smith",
        first_order_date=datetime(2023, 5, 2), last_order_date=datetime(2023, 5, 2),
        total_orders=1, total_spent=Decimal("400.00"),
    )
    await seeder.customer("cust-3", datetime(2024, 2, 10), first_name="Bob", last_name="Wilson")

    await seeder.product("prod-1", "Wireless Mouse", category="electronics")
    await seeder.product("prod-2", "USB Keyboard", category="electronics")

    await seeder.order("o-prev", datetime(2023, 12, 15, 10, 0), 90.0)
    await seeder.order("o-1", datetime(2024, 1, 12, 9, 30), 100.0, customer_id="cust-1", channel="online_store")
    await seeder.order("o-2", datetime(2024, 1, 20, 14, 0), 50.0, customer_id="cust-1", channel="pos")
    await seeder.order("o-3", datetime(2024, 1, 20, 9, 45), 30.0)

    await seeder.item("i-1", "o-1", "prod-1", 2, 25.0)
    await seeder.item("i-2", "o-1", "prod-2", 1, 50.0)
    await seeder.item("i-3", "o-2", "prod-2", 1, 50.0)
    await seeder.item("i-4", "o-3", "prod-1", 1, 30.0)

    await seeder.refund("r-1", "o-1", "prod-1", 25.0, datetime(2024, 1, 25), reason="Damaged")
    return seeder


class TestComputeKPIs:
    """Tests for compute_kpis"""

    def test_empty_window(self):
        kpis = compute_kpis([], [], JANUARY, 180, NOW)

        assert kpis.total_revenue == 0.0
        assert kpis.total_orders == 0
        assert kpis.avg_order_value == 0.0
        assert kpis.percent_ordering == 0.0

    def test_customers_created_after_window_are_excluded(self):
        orders = [OrderRow(id="o-1", created_at=datetime(2024, 1, 5), total_price=40.0, customer_id="a")]
        customers = [
            CustomerRow(id="a", created_at=datetime(2024, 1, 2)),
            CustomerRow(id="b", created_at=datetime(2024, 3, 1)),
        ]

        kpis = compute_kpis(orders, customers, JANUARY, 180, NOW)

        assert kpis.new_customers == 1
        assert kpis.percent_ordering == 100.0

    def test_offset_filter_bounds_and_rows(self):
        filters = FilterState(start_date="2024-01-01T00:00:00Z", end_date="2024-01-31T23:59:59.999Z")
        orders = [OrderRow(id="o-1", created_at="2024-01-05T10:00:00Z", total_price=40.0, customer_id="a")]
        customers = [
            CustomerRow(
                id="a",
                created_at="2024-01-02T00:00:00Z",
                first_order_date="2024-01-05T10:00:00Z",
                last_order_date="2024-01-05T10:00:00Z",
                total_orders=1,
            ),
        ]

        kpis = compute_kpis(orders, customers, filters, 180, datetime(2024, 2, 1))

        assert kpis.total_revenue == 40.0
        assert kpis.new_customers == 1
        assert kpis.percent_ordering == 100.0
        assert kpis.churn_risk == 0.0

    def test_churn_scored_from_history_for_past_window(self):
        december = FilterState(start_date=datetime(2023, 12, 1), end_date=datetime(2023, 12, 31, 23, 59, 59))
        customers = [
            CustomerRow(
                id="a",
                created_at=datetime(2022, 12, 1),
                first_order_date=datetime(2023, 1, 5),
                last_order_date=datetime(2024, 6, 1),
                total_orders=2,
            ),
        ]
        history = [OrderRow(id="o-old", created_at=datetime(2023, 1, 5), total_price=50.0, customer_id="a")]

        kpis = compute_kpis([], customers, december, 180, NOW, history=history)

        assert kpis.churn_risk == 100.0


class TestKPIs:
    """Tests for KPI retrieval and comparison"""

    async def test_get_kpis(self, store, session_factory):
        kpis = await make_service(session_factory).get_kpis(JANUARY)

        assert kpis.total_revenue == 180.0
        assert kpis.total_orders == 3
        assert kpis.avg_order_value == 60.0
        assert kpis.new_customers == 1
        assert kpis.percent_ordering == 50.0
        assert kpis.churn_risk == 50.0

    async def test_previous_period_comparison(self, store, session_factory):
        report = await make_service(session_factory).get_kpi_comparison(JANUARY, "previous_period")

        assert report.previous_range.start_date == datetime(2023, 12, 1)
        comparison = report.comparison
        assert comparison.total_revenue.previous == 90.0
        assert comparison.total_revenue.change == 100.0
        assert comparison.total_orders.change == 200.0
        assert comparison.avg_order_value.change == -33.3
        assert comparison.avg_order_value.trend == Trend.DOWN
        assert comparison.churn_risk.previous == 100.0
        assert comparison.churn_risk.trend == Trend.UP

    async def test_previous_year_comparison(self, store, session_factory):
        report = await make_service(session_factory).get_kpi_comparison(JANUARY, "previous_year")

        assert report.previous_range.start_date == datetime(2023, 1, 1)
        assert report.comparison.total_revenue.previous == 0.0
        assert report.comparison.total_revenue.change == 100.0

    async def test_unknown_comparison_mode(self, session_factory):
        with pytest.raises(ValueError):
            await make_service(session_factory).get_kpi_comparison(JANUARY, "previous_decade")

    async def test_past_window_churn_uses_order_history(self, seeder, session_factory):
        await seeder.customer(
            "cust-1", datetime(2022, 12, 1), first_name="John", last_name="Doe",
            first_order_date=datetime(2023, 1, 5), last_order_date=datetime(2024, 6, 1),
            total_orders=2, total_spent=Decimal("150.00"),
        )
        await seeder.order("o-old", datetime(2023, 1, 5, 10, 0), 50.0, customer_id="cust-1")
        await seeder.order("o-new", datetime(2024, 6, 1, 10, 0), 100.0, customer_id="cust-1")
        december = FilterState(
            start_date=datetime(2023, 12, 1),
            end_date=datetime(2023, 12, 31, 23, 59, 59, 999000),
        )
        june = FilterState(start_date=datetime(2024, 6, 1), end_date=datetime(2024, 6, 30, 23, 59, 59))

        past = await make_service(session_factory).get_kpis(december)
        current = await make_service(session_factory).get_kpis(june)

        assert past.total_orders == 0
        assert past.churn_risk == 100.0
        assert current.churn_risk == 0.0

    async def test_fetch_failure_yields_zero_kpis(self):
        kpis = await make_service(broken_session).get_kpis(JANUARY)

        assert kpis.total_revenue == 0.0
        assert kpis.total_orders == 0


class TestSales:
    """Tests for series, breakdowns and sales analysis"""

    async def test_revenue_time_series(self, store, session_factory):
        series = await make_service(session_factory).get_revenue_time_series(JANUARY)

        assert [(p.date, p.revenue, p.orders) for p in series] == [
            ("2024-01-12", 100.0, 1),
            ("2024-01-20", 80.0, 2),
        ]

    async def test_monthly_series(self, store, session_factory):
        series = await make_service(session_factory).get_revenue_time_series(JANUARY, Granularity.MONTHLY)

        assert len(series) == 1
        assert series[0].label == "Jan 2024"
        assert series[0].revenue == 180.0

    async def test_summary_tier_used_when_present(self, store, session_factory):
        await store.summary(datetime(2024, 1, 3).date(), 999.0, 9, 7, channel="pos")

        series = await make_service(session_factory).get_revenue_time_series(JANUARY)

        assert [(p.date, p.revenue, p.customers) for p in series] == [("2024-01-03", 999.0, 7)]

    async def test_channel_breakdown(self, store, session_factory):
        rows = await make_service(session_factory).get_channel_breakdown(JANUARY)

        assert [r.name for r in rows] == ["online_store", "pos", "Direct"]

    async def test_segment_breakdown(self, store, session_factory):
        rows = await make_service(session_factory).get_segment_breakdown(JANUARY)

        assert [r.name for r in rows] == ["Unknown"]
        assert rows[0].percentage == 100.0

    async def test_hourly_distribution(self, store, session_factory):
        hours = await make_service(session_factory).get_hourly_distribution(JANUARY)

        assert len(hours) == 24
        assert hours[9].orders == 2
        assert hours[14].orders == 1

    async def test_sales_analysis(self, store, session_factory):
        analysis = await make_service(session_factory).get_sales_analysis(JANUARY)

        assert analysis.kpis.total_revenue == 180.0
        assert analysis.revenue_growth == 100.0
        assert analysis.orders_growth == 200.0
        assert analysis.aov_growth == -33.3
        assert analysis.growth_driver == "volume"
        assert "revenue_growth" in {i.type for i in analysis.insights}

    async def test_sales_analysis_without_data_source(self):
        analysis = await make_service(broken_session).get_sales_analysis(JANUARY)

        assert analysis.revenue_growth is None
        assert analysis.growth_driver is None
        assert analysis.series == []
        assert analysis.insights == []


class TestProductsAndCustomers:
    """Tests for top-N, returns, cohorts and churn"""

    async def test_top_products(self, store, session_factory):
        products = await make_service(session_factory).get_top_products(JANUARY)

        assert [(p.product_id, p.revenue) for p in products] == [("prod-2", 100.0), ("prod-1", 80.0)]

    async def test_top_customers(self, store, session_factory):
        customers = await make_service(session_factory).get_top_customers(JANUARY, limit=5)

        assert len(customers) == 1
        assert customers[0].name == "John Doe"
        assert customers[0].revenue == 150.0

    async def test_product_performance(self, store, session_factory):
        await store.item("i-prev", "o-prev", "prod-1", 2, 45.0)

        report = await make_service(session_factory).get_product_performance(JANUARY)

        assert [(p.product_id, p.revenue, p.units_sold) for p in report.products] == [
            ("prod-2", 100.0, 2),
            ("prod-1", 80.0, 3),
        ]
        assert report.products[0].growth_rate == 100.0
        assert report.products[1].previous_revenue == 90.0
        assert report.products[1].growth_rate == -11.1
        assert [(c.category, c.percentage) for c in report.categories] == [("electronics", 100.0)]
        assert [t.date for t in report.trend] == ["2024-01-12", "2024-01-12", "2024-01-20", "2024-01-20"]
        assert report.summary.previous_total_revenue == 90.0

    async def test_product_performance_without_data_source(self):
        report = await make_service(broken_session).get_product_performance(JANUARY)

        assert report.products == []
        assert report.summary.total_revenue == 0.0
        assert report.summary.revenue_growth is None

    async def test_returned_products(self, store, session_factory):
        report = await make_service(session_factory).get_returned_products(JANUARY)

        assert report.total_returns == 1
        assert report.products[0].name == "Wireless Mouse"
        assert report.products[0].return_rate == 33.3

    async def test_cohort_income(self, store, session_factory):
        points = await make_service(session_factory).get_cohort_income(JANUARY)

        assert [(p.cohort_month, p.month_index, p.avg_income) for p in points] == [("2024-01", 0, 150.0)]

    async def test_cohort_retention_table(self, store, session_factory):
        rows = await make_service(session_factory).get_cohort_retention_table(JANUARY)

        assert len(rows) == 1
        assert rows[0].retention == {0: 100.0}

    async def test_churn_overview(self, store, session_factory):
        overview = await make_service(session_factory).get_churn_overview()

        assert overview.summary.total_customers == 3
        assert overview.summary.churned_customers == 1
        assert overview.customers[0].customer_id == "cust-2"
        assert overview.customers[0].risk_level == RiskLevel.HIGH
        assert overview.customers[0].segment == "churned"
        assert overview.ltv_distribution[0].ltv_range == "$0 - $500"
        assert overview.ltv_distribution[0].customer_count == 3

    async def test_business_segments(self, store, session_factory):
        result = await make_service(session_factory).get_business_segments(JANUARY)

        assert result.total_customers == 3
        assert [s.segment_name for s in result.segments] == ["promising_customers", "dormant_customers"]
        assert result.segments[1].customer_count == 2


class TestFiltersAndDashboard:
    """Tests for filter resolution and the assembled dashboard"""

    def test_resolve_filters_uses_fiscal_year(self, session_factory):
        settings = MerchantSettings(merchant_id=MERCHANT_ID, financial_year_start="04-01", financial_year_end="03-31")

        filters = make_service(session_factory, merchant_settings=settings).resolve_filters(channel="all")

        assert filters.start_date == datetime(2024, 4, 1)
        assert filters.end_date.date() == datetime(2025, 3, 31).date()
        assert filters.channel is None

    async def test_dashboard(self, store, session_factory):
        dashboard = await make_service(session_factory).get_dashboard(JANUARY)

        assert dashboard.kpis.total_revenue == 180.0
        assert dashboard.comparison is not None
        assert dashboard.comparison.total_revenue.change == 100.0
        assert len(dashboard.revenue_series) == 2
        assert len(dashboard.hourly) == 24
        assert dashboard.top_products[0].product_id == "prod-2"
        assert dashboard.warnings == []

    async def test_dashboard_without_comparison(self, store, session_factory):
        dashboard = await make_service(session_factory).get_dashboard(JANUARY, include_comparison=False)

        assert dashboard.comparison is None

    async def test_dashboard_reports_truncation(self, store, session_factory):
        dashboard = await make_service(session_factory, page_size=3).get_dashboard(JANUARY, include_comparison=False)

        assert dashboard.warnings
        assert all("truncated" in w for w in dashboard.warnings)

    async def test_dashboard_degrades_on_failure(self):
        dashboard = await make_service(broken_session).get_dashboard(JANUARY)

        assert dashboard.kpis.total_orders == 0
        assert dashboard.revenue_series == []
        assert dashboard.channels == []
        assert dashboard.top_products == []
        assert len(dashboard.hourly) == 24
