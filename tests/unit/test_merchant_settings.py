"""
Unit Tests - Merchant Settings and Cache
"""
import pytest
from pydantic import ValidationError

from merchant_analytics.analytics.merchant_settings import (
    MerchantSettings,
    SettingsCache,
    currency_symbol,
    format_currency,
    load_merchant_settings,
    save_merchant_settings,
)
from merchant_analytics.config import AnalyticsSettings
from merchant_analytics.database.models import MerchantSettingsRecord


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class TestMerchantSettings:
    """Tests for settings validation and formatting"""

    def test_defaults_follow_config(self):
        config = AnalyticsSettings(financial_year_start="04-01", financial_year_end="03-31", churn_period_days=90)

        settings = MerchantSettings.defaults("merchant-1", config=config)

        assert settings.merchant_id == "merchant-1"
        assert settings.financial_year_start == "04-01"
        assert settings.churn_period_days == 90

    def test_currency_upper_cased(self):
        assert MerchantSettings(currency="eur").currency == "EUR"

    @pytest.mark.parametrize("field,value", [
        ("financial_year_start", "13-01"),
        ("financial_year_end", "0401"),
        ("timezone", "Mars/Olympus_Mons"),
        ("churn_period_days", 0),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            MerchantSettings(**{field: value})

    def test_tzinfo(self):
        assert str(MerchantSettings(timezone="Europe/London").tzinfo) == "Europe/London"

    def test_format_currency(self):
        assert format_currency(1234.5) == "$1,234.50"
        assert format_currency(-12, MerchantSettings(currency="EUR")) == "-€12.00"
        assert currency_symbol("gbp") == "£"
        assert currency_symbol("XYZ") == "$"


class TestSettingsCache:
    """Tests for the TTL cache"""

    async def test_refresh_on_first_access(self):
        clock = FakeClock()
        cache = SettingsCache(ttl_seconds=300, clock=clock)
        calls = []

        async def loader(merchant_id):
            calls.append(merchant_id)
            return MerchantSettings(merchant_id=merchant_id, currency="GBP")

        first = await cache.get_or_refresh("merchant-1", loader)
        second = await cache.get_or_refresh("merchant-1", loader)

        assert first.currency == "GBP"
        assert second is first
        assert calls == ["merchant-1"]

    async def test_entry_goes_stale_after_ttl(self):
        clock = FakeClock()
        cache = SettingsCache(ttl_seconds=300, clock=clock)
        cache.put(MerchantSettings(merchant_id="merchant-1"))

        clock.advance(299)
        assert cache.is_stale("merchant-1") is False

        clock.advance(1)
        assert cache.is_stale("merchant-1") is True
        assert cache.get("merchant-1") is not None

    async def test_invalidate(self):
        cache = SettingsCache(ttl_seconds=300, clock=FakeClock())
        cache.put(MerchantSettings(merchant_id="merchant-1"))
        cache.put(MerchantSettings(merchant_id="merchant-2"))

        cache.invalidate("merchant-1")
        assert cache.get("merchant-1") is None
        assert cache.get("merchant-2") is not None

        cache.invalidate()
        assert cache.get("merchant-2") is None

    def test_expired_entries_pruned_on_put(self):
        clock = FakeClock()
        cache = SettingsCache(ttl_seconds=300, clock=clock)
        cache.put(MerchantSettings(merchant_id="merchant-1"))
        clock.advance(200)
        cache.put(MerchantSettings(merchant_id="merchant-2"))

        clock.advance(100)
        cache.put(MerchantSettings(merchant_id="merchant-3"))

        assert len(cache) == 2
        assert cache.get("merchant-1") is None
        assert cache.get("merchant-2") is not None

    def test_size_bounded_by_active_merchants(self):
        clock = FakeClock()
        cache = SettingsCache(ttl_seconds=60, clock=clock)

        for index in range(100):
            cache.put(MerchantSettings(merchant_id=f"merchant-{index}"))
            clock.advance(10)

        assert len(cache) == 6

    def test_get_never_loads(self):
        cache = SettingsCache(ttl_seconds=300, clock=FakeClock())

        assert cache.get("missing") is None
        assert cache.is_stale("missing") is True


class TestSettingsPersistence:
    """Tests for loading and saving settings rows"""

    async def test_missing_row_yields_defaults(self, test_db):
        settings = await load_merchant_settings(test_db, "merchant-1")

        assert settings.merchant_id == "merchant-1"
        assert settings.financial_year_start == MerchantSettings.defaults().financial_year_start

    async def test_save_then_load(self, test_db):
        await save_merchant_settings(test_db, MerchantSettings(
            merchant_id="merchant-1",
            financial_year_start="07-01",
            financial_year_end="06-30",
            timezone="America/New_York",
            currency="CAD",
            churn_period_days=120,
        ))
        await test_db.commit()

        loaded = await load_merchant_settings(test_db, "merchant-1")

        assert loaded.financial_year_start == "07-01"
        assert loaded.timezone == "America/New_York"
        assert loaded.currency == "CAD"
        assert loaded.churn_period_days == 120

    async def test_invalid_stored_row_yields_defaults(self, test_db):
        test_db.add(MerchantSettingsRecord(merchant_id="merchant-1", timezone="Not/AZone"))
        await test_db.commit()

        loaded = await load_merchant_settings(test_db, "merchant-1")

        assert loaded.merchant_id == "merchant-1"
        assert loaded.timezone == MerchantSettings.defaults().timezone
