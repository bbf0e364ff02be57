"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async)
- HTTP test client with the DB dependency overridden
- Wallet settings row and funded wallets
"""
# הגדרת ADMIN_API_KEY לפני ייבוא app: ה-endpoints של אדמין חסומים בלי מפתח
import os
os.environ.setdefault("ADMIN_API_KEY", "test-admin-api-key-for-testing-only")

from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace_wallet.core.config import settings
from marketplace_wallet.db.database import Base, get_db
from marketplace_wallet.db.models.wallet_settings import WalletSettings, SETTINGS_ROW_ID
from marketplace_wallet.domain.services.wallet_service import WalletService
from marketplace_wallet.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# הערה: לא מגדירים event_loop fixture מותאם אישית כי pytest-asyncio 0.23+
# מטפל בזה אוטומטית עם asyncio_mode=auto ו-asyncio_default_fixture_loop_scope=function


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-API-Key": settings.ADMIN_API_KEY}


# ============================================================================
# Wallet fixtures
# ============================================================================

# יום 0 של תרחישי הבדיקה: כל הזמנים נמסרים במפורש לשירותים
DAY0 = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def day0() -> datetime:
    return DAY0


@pytest.fixture
async def wallet_settings(db_session: AsyncSession) -> WalletSettings:
    """שורת הגדרות לפי תרחישי הבדיקה: ratio=0.10, max=500, expiry=90, bonus=50"""
    row = WalletSettings(
        id=SETTINGS_ROW_ID,
        is_enabled=True,
        coin_to_currency_ratio=Decimal("0.10"),
        max_redeemable_coins=500,
        coin_expiry_days=90,
        first_purchase_coins=50,
        min_order_value=Decimal("0.00"),
    )
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
def wallet_service(db_session: AsyncSession) -> WalletService:
    return WalletService(db_session)


@pytest.fixture
def funded_wallet(wallet_service: WalletService, wallet_settings):
    """Factory: wallet with `balance` coins credited at `now` (defaults to day 0)"""

    async def _create(user_id: int, balance: int, now: datetime = DAY0):
        return await wallet_service.credit(
            user_id,
            balance,
            "ORDER_EARNING",
            reference_id=None,
            now=now,
        )

    return _create
