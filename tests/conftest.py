"""
Shared fixtures: in-memory SQLite database, factories, fake payment rail and
an HTTP client wired to the FastAPI app through dependency overrides.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ORDER_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["SCHEDULER_ENABLED"] = "false"

import uuid
from decimal import Decimal
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_payment_rail
from app.core.exceptions import ExternalServiceError, ExternalServiceTimeout
from app.core.security import create_access_token
from app.database import Base, get_db
from app.main import app
from app.models.affiliate import Affiliate, AffiliateStatus
from app.models.commission import BrandCommission, CommissionTier
from app.models.user import User
from app.schemas.order import OrderEvent
from app.services.brand_access_service import BrandAccessService
from app.services.payment_rail import PaymentRail, TransferResult


class FakePaymentRail(PaymentRail):
    """Records transfers instead of calling a provider."""

    provider = "razorpay"

    def __init__(self):
        self.calls: List[dict] = []
        self.fail = False
        self.timeout = False

    async def transfer(self, destination, amount, currency, idempotency_key):
        self.calls.append({
            "destination": destination,
            "amount": amount,
            "currency": currency,
            "idempotency_key": idempotency_key,
        })
        if self.timeout:
            raise ExternalServiceTimeout("Payment provider timed out; transfer outcome unknown")
        if self.fail:
            raise ExternalServiceError("Transfer rejected by provider")
        return TransferResult(transfer_id=f"trf_{len(self.calls)}", status="processed")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINT works
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def rail():
    return FakePaymentRail()


@pytest_asyncio.fixture
async def client(session_factory, rail):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_rail] = lambda: rail

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Factories ====================

async def make_user(
    db: AsyncSession,
    email: str,
    role: str = "USER",
    referred_by_email: Optional[str] = None,
) -> User:
    user = User(id=uuid.uuid4(), email=email, name=email.split("@")[0], role=role, referred_by_email=referred_by_email)
    db.add(user)
    await db.commit()
    return user


async def make_brand(db: AsyncSession, owner: User, slug: str, approved: bool = True, genre_id=None):
    brand = await BrandAccessService(db).create_brand(owner, slug.title(), slug, genre_id)
    if approved:
        brand.is_approved = True
        await db.commit()
    return brand


async def make_tiered_commission(db: AsyncSession, brand_id, tiers, base_rate="0.50") -> BrandCommission:
    commission = BrandCommission(
        id=uuid.uuid4(),
        brand_id=brand_id,
        base_rate=Decimal(base_rate),
        is_automatic=True,
        tiers=[
            CommissionTier(id=uuid.uuid4(), name=name, min_sales=Decimal(min_sales), rate=Decimal(rate))
            for name, min_sales, rate in tiers
        ],
    )
    db.add(commission)
    await db.commit()
    return commission


async def make_affiliate(
    db: AsyncSession,
    brand_id,
    user: User,
    code: str,
    rate: str = "0.20",
    status: AffiliateStatus = AffiliateStatus.APPROVED,
) -> Affiliate:
    affiliate = Affiliate(
        id=uuid.uuid4(),
        brand_id=brand_id,
        user_id=user.id,
        referral_code=code,
        commission_rate=Decimal(rate),
        status=status.value,
    )
    db.add(affiliate)
    await db.commit()
    return affiliate


def order_event(brand_id, order_id: str, total: str, **kwargs) -> OrderEvent:
    return OrderEvent(external_order_id=order_id, brand_id=brand_id, total_amount=Decimal(total), **kwargs)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
