"""
Test Suite Configuration
"""
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from merchant_analytics.analytics.rows import CustomerRow, LineItemRow, OrderRow, RefundRow
from merchant_analytics.config import AnalyticsSettings, Settings
from merchant_analytics.database.models import (
    Base,
    Customer,
    DailyRevenueSummary,
    Order,
    OrderItem,
    Product,
    Refund,
)

MERCHANT_ID = "merchant-1"
OTHER_MERCHANT_ID = "merchant-2"

# Fixed reference instant for every time-dependent test
NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
def analytics_config() -> AnalyticsSettings:
    return AnalyticsSettings(page_size=1000, max_rows=50000, query_timeout_seconds=5, query_retries=2)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine so concurrent sessions share one database"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session


class StoreSeeder:
    """Inserts merchant rows into the test database"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, *models) -> None:
        async with self.session_factory() as session:
            session.add_all(models)
            await session.commit()

    async def customer(
        self,
        customer_id: str,
        created_at: datetime,
        merchant_id: str = MERCHANT_ID,
        **fields,
    ) -> Customer:
        model = Customer(id=customer_id, merchant_id=merchant_id, created_at=created_at, **fields)
        await self.add(model)
        return model

    async def order(
        self,
        order_id: str,
        created_at: datetime,
        total: float,
        customer_id: Optional[str] = None,
        merchant_id: str = MERCHANT_ID,
        **fields,
    ) -> Order:
        model = Order(
            id=order_id,
            merchant_id=merchant_id,
            created_at=created_at,
            total_price=Decimal(str(total)),
            customer_id=customer_id,
            **fields,
        )
        await self.add(model)
        return model

    async def product(self, product_id: str, name: str, category: Optional[str] = None) -> Product:
        model = Product(id=product_id, merchant_id=MERCHANT_ID, name=name, category=category)
        await self.add(model)
        return model

    async def item(self, item_id: str, order_id: str, product_id: str, quantity: int, price: float) -> OrderItem:
        model = OrderItem(
            id=item_id,
            merchant_id=MERCHANT_ID,
            order_id=order_id,
            product_id=product_id,
            quantity=quantity,
            price=Decimal(str(price)),
        )
        await self.add(model)
        return model

    async def refund(
        self,
        refund_id: str,
        order_id: str,
        product_id: str,
        amount: float,
        created_at: datetime,
        reason: Optional[str] = None,
    ) -> Refund:
        model = Refund(
            id=refund_id,
            merchant_id=MERCHANT_ID,
            order_id=order_id,
            product_id=product_id,
            amount=Decimal(str(amount)),
            reason=reason,
            created_at=created_at,
        )
        await self.add(model)
        return model

    async def summary(
        self,
        day: date,
        revenue: float,
        orders: int,
        customers: int,
        channel: Optional[str] = None,
        segment: Optional[str] = None,
        merchant_id: str = MERCHANT_ID,
    ) -> DailyRevenueSummary:
        model = DailyRevenueSummary(
            merchant_id=merchant_id,
            date=day,
            channel=channel,
            customer_segment=segment,
            total_revenue=Decimal(str(revenue)),
            total_orders=orders,
            unique_customers=customers,
        )
        await self.add(model)
        return model


@pytest.fixture
def seeder(session_factory) -> StoreSeeder:
    return StoreSeeder(session_factory)


@pytest.fixture
def sample_orders() -> List[OrderRow]:
    """Three orders across two days and two channels"""
    return [
        OrderRow(id="ord-1", created_at=datetime(2024, 1, 1, 9, 30), total_price=100.0,
                 customer_id="cust-1", channel="online_store", customer_segment="new"),
        OrderRow(id="ord-2", created_at=datetime(2024, 1, 1, 14, 0), total_price=50.0,
                 customer_id="cust-2", channel="pos", customer_segment="returning"),
        OrderRow(id="ord-3", created_at=datetime(2024, 1, 2, 9, 45), total_price=30.0,
                 customer_id="cust-1", channel=None, customer_segment=None),
    ]


@pytest.fixture
def sample_line_items() -> List[LineItemRow]:
    return [
        LineItemRow(order_id="ord-1", product_id="prod-1", quantity=2, unit_price=25.0,
                    customer_id="cust-1", product_name="Wireless Mouse", category="electronics",
                    customer_name="John Doe"),
        LineItemRow(order_id="ord-1", product_id="prod-2", quantity=1, unit_price=50.0,
                    customer_id="cust-1", product_name="USB Keyboard", category="electronics",
                    customer_name="John Doe"),
        LineItemRow(order_id="ord-2", product_id="prod-2", quantity=1, unit_price=50.0,
                    customer_id="cust-2", product_name="USB Keyboard", category="electronics",
                    customer_name="Jane Smith"),
        LineItemRow(order_id="ord-3", product_id="prod-3", quantity=3, unit_price=10.0,
                    customer_id=None, product_name="Monitor Stand", category="home_garden"),
    ]


@pytest.fixture
def sample_refunds() -> List[RefundRow]:
    return [
        RefundRow(order_id="ord-1", amount=25.0, created_at=datetime(2024, 1, 5),
                  product_id="prod-1", reason="Damaged", product_name="Wireless Mouse"),
        RefundRow(order_id="ord-2", amount=50.0, created_at=datetime(2024, 1, 6),
                  product_id="prod-2", reason="Wrong size", product_name="USB Keyboard"),
        RefundRow(order_id="ord-1", amount=50.0, created_at=datetime(2024, 1, 7),
                  product_id="prod-2", reason=None, product_name="USB Keyboard"),
    ]


@pytest.fixture
def sample_customers() -> List[CustomerRow]:
    return [
        CustomerRow(id="cust-1", created_at=datetime(2024, 1, 15), first_name="John", last_name="Doe"),
        CustomerRow(id="cust-2", created_at=datetime(2024, 1, 28), first_name="Jane", last_name="Smith"),
        CustomerRow(id="cust-3", created_at=datetime(2024, 2, 3), first_name="Bob", last_name="Wilson"),
    ]
