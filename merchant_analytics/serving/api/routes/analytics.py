"""
Analytics API Endpoints

REST API over the aggregation core. Every endpoint takes ``merchant_id``
plus the common filter parameters (timeframe, start, end, segment,
channel, product).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import structlog

from merchant_analytics.analytics.aggregations import busiest_hours, quietest_hours
from merchant_analytics.analytics.ranges import timeframe_label
from merchant_analytics.analytics.schemas import (
    BreakdownRow,
    BusinessSegmentation,
    ChurnOverview,
    CohortIncomePoint,
    CohortRetentionRow,
    Dashboard,
    FilterState,
    Granularity,
    HourlyPoint,
    KPIComparisonReport,
    KPISet,
    ProductPerformanceReport,
    ReturnsReport,
    SalesAnalysis,
    TimeSeriesPoint,
    TopCustomer,
    TopProduct,
)
from merchant_analytics.analytics.service import AnalyticsService
from merchant_analytics.serving.api.dependencies import get_analytics_service, get_filters

router = APIRouter()
logger = structlog.get_logger(__name__)


class RangeResponse(BaseModel):
    """Resolved date range for a timeframe"""
    timeframe: str
    label: str
    filters: FilterState


class SalesTrend(BaseModel):
    """Revenue series with totals"""
    granularity: Granularity
    data: List[TimeSeriesPoint]
    total_revenue: float
    total_orders: int
    warnings: List[str]


class HourlyResponse(BaseModel):
    hours: List[HourlyPoint]
    busiest: List[HourlyPoint]
    quietest: List[HourlyPoint]


@router.get("/range", response_model=RangeResponse)
async def get_range(
    timeframe: Optional[str] = None,
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> RangeResponse:
    """Resolve a timeframe against the merchant's fiscal year."""
    name = timeframe or service.settings.default_date_range
    return RangeResponse(timeframe=name, label=timeframe_label(name), filters=filters)


@router.get("/kpis", response_model=KPISet)
async def get_kpis(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> KPISet:
    return await service.get_kpis(filters)


@router.get("/kpis/comparison", response_model=KPIComparisonReport)
async def get_kpi_comparison(
    mode: str = Query("previous_period", enum=["previous_period", "previous_year"]),
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> KPIComparisonReport:
    return await service.get_kpi_comparison(filters, mode)


@router.get("/sales/trend", response_model=SalesTrend)
async def get_sales_trend(
    granularity: Granularity = Granularity.DAILY,
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> SalesTrend:
    """Revenue over time at the requested granularity."""
    data = await service.get_revenue_time_series(filters, granularity)
    logger.info("Sales trend computed", data_points=len(data), granularity=granularity.value)
    return SalesTrend(
        granularity=granularity,
        data=data,
        total_revenue=round(sum(p.revenue for p in data), 2),
        total_orders=sum(p.orders for p in data),
        warnings=service.warnings,
    )


@router.get("/sales/by-channel", response_model=List[BreakdownRow])
async def get_sales_by_channel(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> List[BreakdownRow]:
    return await service.get_channel_breakdown(filters)


@router.get("/sales/by-segment", response_model=List[BreakdownRow])
async def get_sales_by_segment(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> List[BreakdownRow]:
    return await service.get_segment_breakdown(filters)


@router.get("/sales/hourly", response_model=HourlyResponse)
async def get_hourly_distribution(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> HourlyResponse:
    hours = await service.get_hourly_distribution(filters)
    return HourlyResponse(hours=hours, busiest=busiest_hours(hours), quietest=quietest_hours(hours))


@router.get("/sales/analysis", response_model=SalesAnalysis)
async def get_sales_analysis(
    granularity: Granularity = Granularity.DAILY,
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> SalesAnalysis:
    return await service.get_sales_analysis(filters, granularity)


@router.get("/products/top", response_model=List[TopProduct])
async def get_top_products(
    limit: int = Query(10, ge=1, le=100),
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> List[TopProduct]:
    return await service.get_top_products(filters, limit)


@router.get("/products/performance", response_model=ProductPerformanceReport)
async def get_product_performance(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> ProductPerformanceReport:
    """Per-product and per-category sales with growth against the previous period."""
    return await service.get_product_performance(filters)


@router.get("/products/returns", response_model=ReturnsReport)
async def get_returned_products(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> ReturnsReport:
    return await service.get_returned_products(filters)


@router.get("/customers/top", response_model=List[TopCustomer])
async def get_top_customers(
    limit: int = Query(10, ge=1, le=100),
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> List[TopCustomer]:
    return await service.get_top_customers(filters, limit)


@router.get("/customers/cohorts", response_model=List[CohortIncomePoint])
async def get_customer_cohorts(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> List[CohortIncomePoint]:
    """Average cumulative income per customer for cohorts signing up in the window."""
    return await service.get_cohort_income(filters)


@router.get("/customers/retention", response_model=List[CohortRetentionRow])
async def get_customer_retention(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> List[CohortRetentionRow]:
    return await service.get_cohort_retention_table(filters)


@router.get("/customers/churn", response_model=ChurnOverview)
async def get_customer_churn(
    service: AnalyticsService = Depends(get_analytics_service),
) -> ChurnOverview:
    return await service.get_churn_overview()


@router.get("/customers/segments", response_model=BusinessSegmentation)
async def get_customer_segments(
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> BusinessSegmentation:
    return await service.get_business_segments(filters)


@router.get("/dashboard", response_model=Dashboard)
async def get_dashboard(
    granularity: Granularity = Granularity.DAILY,
    compare: bool = True,
    service: AnalyticsService = Depends(get_analytics_service),
    filters: FilterState = Depends(get_filters),
) -> Dashboard:
    return await service.get_dashboard(filters, granularity, include_comparison=compare)
