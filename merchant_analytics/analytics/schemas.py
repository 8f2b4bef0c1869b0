"""
Analytics Schemas

Pydantic models for the filter contract and every output shape the
aggregation core hands to its consumers.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .rows import to_naive_utc


ALL_FILTER_VALUES = {"", "all"}


class Granularity(str, Enum):
    """Time-series bucket granularity"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"


class RiskLevel(str, Enum):
    """Churn risk tier"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class DateRange(BaseModel):
    """Concrete inclusive interval"""
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def strip_offset(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @property
    def duration(self):
        return self.end_date - self.start_date


class FilterState(BaseModel):
    """
    Query contract threaded through every aggregation call.

    Both bounds are inclusive. ``"all"`` for a dimension means no filter.
    """
    start_date: datetime
    end_date: datetime
    segment: Optional[str] = None
    channel: Optional[str] = None
    product: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def strip_offset(cls, v: datetime) -> datetime:
        """Bounds compare against naive UTC row timestamps."""
        return to_naive_utc(v)

    @field_validator("segment", "channel", "product")
    @classmethod
    def normalize_all(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip().lower() in ALL_FILTER_VALUES:
            return None
        return v.strip()

    @model_validator(mode="after")
    def check_bounds(self) -> "FilterState":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def date_range(self) -> DateRange:
        return DateRange(start_date=self.start_date, end_date=self.end_date)

    def with_range(self, date_range: DateRange) -> "FilterState":
        return self.model_copy(
            update={"start_date": date_range.start_date, "end_date": date_range.end_date}
        )


# =============================================================================
# SERIES AND BREAKDOWNS
# =============================================================================

class TimeSeriesPoint(BaseModel):
    """One time bucket"""
    date: str
    label: str
    revenue: float
    orders: int
    customers: int
    avg_order_value: float
    ordering_rate: float


class BreakdownRow(BaseModel):
    """One channel or segment slice"""
    name: str
    revenue: float
    orders: int
    customers: int
    percentage: float
    color: str


class HourlyPoint(BaseModel):
    """Orders placed in one hour of the day"""
    hour: int
    label: str
    orders: int
    revenue: float
    percentage: float


class TopProduct(BaseModel):
    product_id: str
    name: str
    category: Optional[str] = None
    revenue: float
    quantity: int
    orders: int


class TopCustomer(BaseModel):
    customer_id: str
    name: str
    revenue: float
    quantity: int
    orders: int


# =============================================================================
# PRODUCT PERFORMANCE
# =============================================================================

class ProductPerformance(BaseModel):
    """Sales of one product in the window, with growth against the previous window"""
    product_id: str
    name: str
    category: str
    revenue: float
    units_sold: int
    orders: int
    avg_price: float
    previous_revenue: Optional[float] = None
    growth_rate: Optional[float] = None
    performance_score: float


class CategoryPerformance(BaseModel):
    category: str
    revenue: float
    units_sold: int
    products: int
    percentage: float
    color: str


class ProductTrendPoint(BaseModel):
    """Daily sales of one of the leading products"""
    date: str
    product_id: str
    name: str
    revenue: float
    units_sold: int


class ProductPerformanceSummary(BaseModel):
    total_products: int
    total_revenue: float
    total_units_sold: int
    previous_total_products: Optional[int] = None
    previous_total_revenue: Optional[float] = None
    previous_total_units_sold: Optional[int] = None
    revenue_growth: Optional[float] = None


class ProductPerformanceReport(BaseModel):
    products: List[ProductPerformance]
    categories: List[CategoryPerformance]
    trend: List[ProductTrendPoint]
    summary: ProductPerformanceSummary


# =============================================================================
# COHORTS
# =============================================================================

class CohortIncomePoint(BaseModel):
    """Average cumulative income per cohort member at a month offset"""
    cohort_month: str
    month_index: int = Field(ge=0)
    cohort_size: int
    avg_income: float


class CohortRetentionPoint(BaseModel):
    """Share of a cohort ordering at exactly a month offset"""
    cohort_month: str
    month_index: int = Field(ge=0)
    cohort_size: int
    active_customers: int
    retention_rate: float


class CohortRetentionRow(BaseModel):
    """Pivoted retention row: month offset -> retention rate"""
    cohort_month: str
    cohort_size: int
    retention: Dict[int, float]


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerRisk(BaseModel):
    """Churn score for one customer"""
    customer_id: str
    name: str
    email: Optional[str] = None
    total_orders: int
    total_spent: float
    days_since_last_order: Optional[int]
    avg_order_frequency: float
    is_churned: bool
    risk_level: RiskLevel
    stored_segment: Optional[str] = None
    segment: Optional[str] = None


class ChurnSummary(BaseModel):
    total_customers: int
    churned_customers: int
    high_risk: int
    medium_risk: int
    low_risk: int
    churn_rate: float
    revenue_at_risk: float


class LTVBand(BaseModel):
    ltv_range: str
    min_value: float
    max_value: Optional[float]
    customer_count: int
    total_ltv: float


class ChurnOverview(BaseModel):
    summary: ChurnSummary
    customers: List[CustomerRisk]
    ltv_distribution: List[LTVBand]


class SegmentMember(BaseModel):
    customer_id: str
    name: str
    email: Optional[str] = None
    total_spent: float
    order_count: int
    days_since_last_order: Optional[int]


class BusinessSegment(BaseModel):
    segment_name: str
    description: str
    customer_count: int
    total_revenue: float
    avg_order_value: float
    avg_orders_per_customer: float
    percentage: float
    customers: List[SegmentMember]


class BusinessSegmentation(BaseModel):
    total_customers: int
    segments: List[BusinessSegment]


# =============================================================================
# RETURNS
# =============================================================================

class ReturnReason(BaseModel):
    reason: str
    count: int
    total_value: float
    percentage: float


class ReturnedProduct(BaseModel):
    product_id: str
    name: str
    category: Optional[str] = None
    total_returns: int
    total_return_value: float
    avg_return_value: float
    return_rate: float
    reasons: List[ReturnReason]


class ReturnsReport(BaseModel):
    products: List[ReturnedProduct]
    total_returns: int
    total_return_value: float
    avg_return_rate: float


# =============================================================================
# KPIs AND COMPARISONS
# =============================================================================

class KPISet(BaseModel):
    """Top-level dashboard KPIs"""
    total_revenue: float = 0.0
    total_orders: int = 0
    avg_order_value: float = 0.0
    percent_ordering: float = 0.0
    new_customers: int = 0
    churn_risk: float = 0.0


class ComparisonResult(BaseModel):
    current: float
    previous: float
    change: float
    trend: Trend


class KPIComparison(BaseModel):
    total_revenue: ComparisonResult
    total_orders: ComparisonResult
    avg_order_value: ComparisonResult
    percent_ordering: ComparisonResult
    new_customers: ComparisonResult
    churn_risk: ComparisonResult


class KPIComparisonReport(BaseModel):
    mode: str
    current_range: DateRange
    previous_range: DateRange
    comparison: KPIComparison


class SalesInsight(BaseModel):
    """One generated observation about sales performance"""
    type: str
    title: str
    description: str
    impact: str
    value: Optional[float] = None


class SalesAnalysis(BaseModel):
    kpis: KPISet
    revenue_growth: Optional[float] = None
    orders_growth: Optional[float] = None
    aov_growth: Optional[float] = None
    growth_driver: Optional[str] = None
    series: List[TimeSeriesPoint]
    channels: List[BreakdownRow]
    insights: List[SalesInsight]


class Dashboard(BaseModel):
    """Every dashboard slot for one filter"""
    filters: FilterState
    kpis: KPISet
    comparison: Optional[KPIComparison] = None
    revenue_series: List[TimeSeriesPoint]
    channels: List[BreakdownRow]
    segments: List[BreakdownRow]
    top_products: List[TopProduct]
    top_customers: List[TopCustomer]
    hourly: List[HourlyPoint]
    warnings: List[str] = Field(default_factory=list)
