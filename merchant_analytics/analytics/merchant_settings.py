"""
Merchant Settings

Per-merchant fiscal year, churn threshold and locale, plus an explicit
TTL cache that the application owns and hands to whoever needs it.
Refreshing is the caller's job; ``get`` never touches the database.
"""

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_analytics.config import AnalyticsSettings, get_settings
from merchant_analytics.database.models import MerchantSettingsRecord
from .ranges import parse_mmdd

logger = structlog.get_logger(__name__)

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "C$",
    "AUD": "A$",
}


class MerchantSettings(BaseModel):
    """Settings record consumed by range resolution, churn scoring and formatting"""

    merchant_id: Optional[str] = None
    financial_year_start: str = "01-01"
    financial_year_end: str = "12-31"
    default_date_range: str = "financial_current"
    timezone: str = "UTC"
    currency: str = "USD"
    churn_period_days: int = Field(default=180, gt=0)

    @field_validator("financial_year_start", "financial_year_end")
    @classmethod
    def validate_mmdd(cls, v: str) -> str:
        parse_mmdd(v)
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def defaults(cls, merchant_id: Optional[str] = None, config: Optional[AnalyticsSettings] = None) -> "MerchantSettings":
        config = config or get_settings().analytics
        return cls(
            merchant_id=merchant_id,
            financial_year_start=config.financial_year_start,
            financial_year_end=config.financial_year_end,
            default_date_range=config.default_timeframe,
            timezone=config.timezone,
            currency=config.currency,
            churn_period_days=config.churn_period_days,
        )

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def currency_symbol(code: Optional[str]) -> str:
    return CURRENCY_SYMBOLS.get((code or "").upper(), "$")


def format_currency(value: float, settings: Optional[MerchantSettings] = None, decimals: int = 2) -> str:
    """Render ``value`` with the merchant's currency symbol, e.g. ``$1,234.50``."""
    symbol = currency_symbol(settings.currency if settings else None)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


async def load_merchant_settings(session: AsyncSession, merchant_id: str) -> MerchantSettings:
    """
    Load a merchant's settings row.

    Missing rows, invalid stored values and query errors all yield defaults.
    """
    try:
        result = await session.execute(
            select(MerchantSettingsRecord).where(MerchantSettingsRecord.merchant_id == merchant_id)
        )
        record = result.scalar_one_or_none()
    except Exception as e:
        logger.error("Failed to load merchant settings", merchant_id=merchant_id, error=str(e))
        return MerchantSettings.defaults(merchant_id)

    if record is None:
        logger.debug("No settings stored, using defaults", merchant_id=merchant_id)
        return MerchantSettings.defaults(merchant_id)

    try:
        return MerchantSettings(
            merchant_id=record.merchant_id,
            financial_year_start=record.financial_year_start,
            financial_year_end=record.financial_year_end,
            default_date_range=record.default_date_range,
            timezone=record.timezone,
            currency=record.currency,
            churn_period_days=record.churn_period_days,
        )
    except ValueError as e:
        logger.warning("Stored settings invalid, using defaults", merchant_id=merchant_id, error=str(e))
        return MerchantSettings.defaults(merchant_id)


async def save_merchant_settings(session: AsyncSession, settings: MerchantSettings) -> MerchantSettings:
    """Insert or update the settings row for ``settings.merchant_id``."""
    record = await session.get(MerchantSettingsRecord, settings.merchant_id)
    if record is None:
        record = MerchantSettingsRecord(merchant_id=settings.merchant_id)
        session.add(record)

    record.financial_year_start = settings.financial_year_start
    record.financial_year_end = settings.financial_year_end
    record.default_date_range = settings.default_date_range
    record.timezone = settings.timezone
    record.currency = settings.currency
    record.churn_period_days = settings.churn_period_days
    await session.flush()

    logger.info("Merchant settings saved", merchant_id=settings.merchant_id)
    return settings


@dataclass
class _CacheEntry:
    value: MerchantSettings
    loaded_at: float


class SettingsCache:
    """
    Short-TTL merchant settings cache.

    Not lock protected: a read racing a refresh sees the previous record,
    which is still internally consistent.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds is None:
            ttl_seconds = get_settings().analytics.settings_cache_ttl_seconds
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, merchant_id: str) -> Optional[MerchantSettings]:
        entry = self._entries.get(merchant_id)
        return entry.value if entry else None

    def is_stale(self, merchant_id: str) -> bool:
        entry = self._entries.get(merchant_id)
        if entry is None:
            return True
        return self._clock() - entry.loaded_at >= self.ttl_seconds

    def put(self, settings: MerchantSettings) -> None:
        now = self._clock()
        self._prune(now)
        self._entries[settings.merchant_id] = _CacheEntry(value=settings, loaded_at=now)

    def _prune(self, now: float) -> None:
        """Drop every entry past its TTL."""
        expired = [
            merchant_id for merchant_id, entry in self._entries.items()
            if now - entry.loaded_at >= self.ttl_seconds
        ]
        for merchant_id in expired:
            del self._entries[merchant_id]
        if expired:
            logger.debug("Pruned expired merchant settings", count=len(expired))

    def __len__(self) -> int:
        return len(self._entries)

    async def refresh(
        self,
        merchant_id: str,
        loader: Callable[[str], Awaitable[MerchantSettings]],
    ) -> MerchantSettings:
        """Reload ``merchant_id`` through ``loader`` and store the result."""
        settings = await loader(merchant_id)
        self.put(settings)
        logger.debug("Merchant settings cache refreshed", merchant_id=merchant_id)
        return settings

    async def get_or_refresh(
        self,
        merchant_id: str,
        loader: Callable[[str], Awaitable[MerchantSettings]],
    ) -> MerchantSettings:
        if self.is_stale(merchant_id):
            return await self.refresh(merchant_id, loader)
        return self.get(merchant_id)

    def invalidate(self, merchant_id: Optional[str] = None) -> None:
        if merchant_id is None:
            self._entries.clear()
        else:
            self._entries.pop(merchant_id, None)
