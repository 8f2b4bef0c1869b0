"""
Analytics Module

Aggregation core: range resolution, tiered row sources, rollups,
customer scoring and period comparison.
"""
from .exceptions import AnalyticsError, FetchError, InvalidFilterError, TenantScopeError
from .merchant_settings import MerchantSettings, SettingsCache
from .ranges import resolve_range, previous_period, previous_year
from .schemas import FilterState, Granularity, KPISet
from .service import AnalyticsService
from .sources import FetchResult, RowSource, TenantScope

__all__ = [
    "AnalyticsError",
    "AnalyticsService",
    "FetchError",
    "FetchResult",
    "FilterState",
    "Granularity",
    "InvalidFilterError",
    "KPISet",
    "MerchantSettings",
    "RowSource",
    "SettingsCache",
    "TenantScope",
    "TenantScopeError",
    "previous_period",
    "previous_year",
    "resolve_range",
]
