"""
Shared test fixtures and configuration for entire test suite.

Provides: In-memory database session, seeded user, payment gateway mock
Dependencies: pytest, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

from unittest.mock import MagicMock

import pytest

from fluxo.boundary.payments.stripe_gateway import StripeGateway
from fluxo.models.billing import (
    GatewayCheckoutSession,
    GatewayCustomer,
    GatewayPortalSession,
)
from tests.factories import make_subscription


@pytest.fixture
async def test_async_db():
    """
    Create in-memory SQLite async database for testing.

    Yields:
        AsyncSession: Test database session with cleanup
    """
    from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
    from sqlalchemy.pool import StaticPool
    from fluxo.boundary.db.base import Base
    import fluxo.boundary.db.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_user(test_async_db):
    """
    Persist a user for billing tests.

    Returns:
        UserModel: Committed user row
    """
    from fluxo.boundary.db.CRUD import user_crud

    user = await user_crud.create(test_async_db, email="ana@example.com")
    await test_async_db.commit()
    return user


@pytest.fixture
def mock_gateway() -> MagicMock:
    """
    Create mock StripeGateway.

    Async methods become AsyncMocks from the class signature; construct_event
    stays synchronous.

    Returns:
        MagicMock: Gateway mock with default return values
    """
    gateway = MagicMock(spec=StripeGateway)
    gateway.create_customer.return_value = GatewayCustomer(id="cus_new", email="ana@example.com")
    gateway.create_checkout_session.return_value = GatewayCheckoutSession(
        id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1"
    )
    gateway.create_portal_session.return_value = GatewayPortalSession(
        id="bps_1", url="https://billing.stripe.com/p/session/bps_1"
    )
    gateway.cancel_at_period_end.return_value = make_subscription(cancel_at_period_end=True)
    return gateway
