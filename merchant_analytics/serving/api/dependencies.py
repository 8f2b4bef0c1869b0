"""
Request Dependencies

Builds the per-request analytics service: tenant scope, cached merchant
settings and the resolved filter.
"""

from typing import Optional

from fastapi import Depends, Query, Request

from merchant_analytics.analytics.merchant_settings import (
    MerchantSettings,
    SettingsCache,
    load_merchant_settings,
)
from merchant_analytics.analytics.schemas import FilterState
from merchant_analytics.analytics.service import AnalyticsService
from merchant_analytics.analytics.sources import RowSource, TenantScope
from merchant_analytics.database.connection import get_read_db


def get_settings_cache(request: Request) -> SettingsCache:
    cache = getattr(request.app.state, "settings_cache", None)
    if cache is None:
        cache = SettingsCache()
        request.app.state.settings_cache = cache
    return cache


async def _load_settings(merchant_id: str) -> MerchantSettings:
    async with get_read_db() as session:
        return await load_merchant_settings(session, merchant_id)


async def get_merchant_settings(
    merchant_id: Optional[str],
    cache: SettingsCache,
) -> MerchantSettings:
    """Cached settings for ``merchant_id``; defaults in admin mode."""
    if not merchant_id:
        return MerchantSettings.defaults()
    return await cache.get_or_refresh(merchant_id, _load_settings)


async def get_analytics_service(
    merchant_id: Optional[str] = Query(None, description="Merchant (tenant) id"),
    cache: SettingsCache = Depends(get_settings_cache),
) -> AnalyticsService:
    scope = TenantScope(merchant_id) if merchant_id else TenantScope.admin()
    settings = await get_merchant_settings(merchant_id, cache)
    return AnalyticsService(RowSource(scope), settings)


async def get_filters(
    service: AnalyticsService = Depends(get_analytics_service),
    timeframe: Optional[str] = Query(None, description="Named timeframe, year, or custom_<start>_<end>"),
    start: Optional[str] = Query(None, description="Custom range start (YYYY-MM-DD)"),
    end: Optional[str] = Query(None, description="Custom range end (YYYY-MM-DD)"),
    segment: Optional[str] = Query(None),
    channel: Optional[str] = Query(None),
    product: Optional[str] = Query(None),
) -> FilterState:
    if timeframe is None and start and end:
        timeframe = "custom"
    return service.resolve_filters(timeframe, start, end, segment=segment, channel=channel, product=product)
