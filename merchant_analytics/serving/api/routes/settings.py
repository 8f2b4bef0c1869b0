"""
Merchant Settings Endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_analytics.analytics.merchant_settings import (
    MerchantSettings,
    SettingsCache,
    load_merchant_settings,
    save_merchant_settings,
)
from merchant_analytics.database.connection import get_db_dependency
from merchant_analytics.serving.api.dependencies import get_settings_cache

router = APIRouter()


class MerchantSettingsUpdate(MerchantSettings):
    """Settings payload; the merchant id comes from the path"""


@router.get("/{merchant_id}", response_model=MerchantSettings)
async def get_merchant_settings(
    merchant_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> MerchantSettings:
    return await load_merchant_settings(db, merchant_id)


@router.put("/{merchant_id}", response_model=MerchantSettings)
async def update_merchant_settings(
    merchant_id: str,
    payload: MerchantSettingsUpdate,
    db: AsyncSession = Depends(get_db_dependency),
    cache: SettingsCache = Depends(get_settings_cache),
) -> MerchantSettings:
    """Store settings and drop the cached copy so the next request reloads them."""
    settings = MerchantSettings(**payload.model_dump(exclude={"merchant_id"}), merchant_id=merchant_id)
    saved = await save_merchant_settings(db, settings)
    cache.invalidate(merchant_id)
    return saved
