"""Shared test configuration and fixtures.

Each test gets a fresh database (in-memory SQLite by default, or the
database named by ``TEST_DATABASE_URL``) and a session wrapped in a
transaction that rolls back after the test.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

# Fast hashing for tests; must be set before milkdrop.config is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from milkdrop.auth.jwt import create_token_pair
from milkdrop.auth.otp import InMemoryOTPStore, get_otp_store
from milkdrop.auth.passwords import hash_password
from milkdrop.billing.verification import build_order_metadata
from milkdrop.database import Base, get_db
from milkdrop.main import app
from milkdrop.models.subscription import Subscription
from milkdrop.models.user import User
from milkdrop.subscriptions.lifecycle import utcnow
from milkdrop.subscriptions.plans import get_plan

TEST_PASSWORD = "testpass123"

_test_db_url = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _make_engine():
    if _test_db_url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory DB
        return create_async_engine(
            _test_db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(_test_db_url, pool_pre_ping=True)


# ---------------------------------------------------------------------------
# Per-test: fresh schema and transactional rollback
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def otp_store() -> InMemoryOTPStore:
    return InMemoryOTPStore()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, otp_store: InMemoryOTPStore) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and OTP store."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_otp_store] = lambda: otp_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Committing sessions: for behaviour that depends on real commit/rollback.
# Do not combine with db_session or the fixtures built on it.
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def committing_client(
    session_factory: async_sessionmaker[AsyncSession], otp_store: InMemoryOTPStore
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient whose get_db commits on success and rolls back on error, as in production."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_otp_store] = lambda: otp_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


async def create_user(
    db_session: AsyncSession,
    role: str = "customer",
    is_active: bool = True,
    phone: str | None = None,
    name: str | None = "Test Customer",
) -> User:
    """Create a user directly in the DB."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        username=f"user_{unique}",
        email=f"user-{unique}@test.com",
        phone=phone,
        name=name,
        hashed_password=hash_password(TEST_PASSWORD),
        is_active=is_active,
        role=role,
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


def headers_for(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id), role=user.role)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


async def create_subscription(
    db_session: AsyncSession,
    user: User,
    status: str = "active",
    start_date: date | None = None,
    end_date: date | None = None,
    paused_at: datetime | None = None,
    subscription_type: str = "500ml",
    duration: str = "6days",
    total_paused_days: int = 0,
) -> Subscription:
    """Insert a subscription row directly, bypassing checkout."""
    today = utcnow().date()
    subscription = Subscription(
        user_id=user.id,
        subscription_type=subscription_type,
        duration=duration,
        amount=Decimal("300.00"),
        currency="inr",
        status=status,
        start_date=start_date or today,
        end_date=end_date or today + timedelta(days=7),
        paused_at=paused_at,
        total_paused_days=total_paused_days,
        address="12 MG Road",
        building_name="Lotus Residency",
        flat_number="4B",
        latitude=Decimal("12.9715987"),
        longitude=Decimal("77.5945627"),
        payment_id=f"pi_{uuid.uuid4().hex[:12]}",
        checkout_session_id=f"cs_test_{uuid.uuid4().hex[:12]}",
    )
    db_session.add(subscription)
    await db_session.flush()
    await db_session.refresh(subscription)
    return subscription


def make_session(user_id: uuid.UUID, plan_code: str = "500ml-6days", **overrides) -> SimpleNamespace:
    """Fake Checkout Session carrying the order metadata the checkout endpoint writes."""
    plan = get_plan(plan_code)
    metadata = build_order_metadata(
        user_id=user_id,
        plan=plan,
        address="12 MG Road",
        building_name="Lotus Residency",
        flat_number="4B",
        latitude=12.9716,
        longitude=77.5946,
    )
    fields = {
        "id": f"cs_test_{uuid.uuid4().hex[:10]}",
        "mode": "payment",
        "payment_status": "paid",
        "payment_intent": f"pi_{uuid.uuid4().hex[:10]}",
        "amount_total": plan.price_minor,
        "currency": "inr",
        "metadata": metadata,
        "url": "https://checkout.stripe.com/c/pay/test",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# ---------------------------------------------------------------------------
# Convenience fixtures: authenticated users
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, phone="+919800000001")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the test customer."""
    return headers_for(test_user)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, role="admin", name="Ops Admin")


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return headers_for(admin_user)
