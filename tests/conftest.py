"""Shared test fixtures."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import get_provider
from app.database import get_session
from app.engine.orders import OrderLifecycleClient
from app.engine.rates import RateQuoteClient
from app.engine.retry import RetryPolicy
from app.engine.validation import OrderRequest
from app.main import app
from app.models.order import Base
from app.providers.mock_provider import MockSettlementProvider

WALLET = "0x" + "ab" * 20


@pytest.fixture
def provider():
    """Deterministic mock provider: no latency, no random failures."""
    return MockSettlementProvider(failure_rate=0.0, latency_ms=0)


@pytest.fixture
def rate_client(provider):
    return RateQuoteClient(provider)


@pytest.fixture
def order_client(provider):
    return OrderLifecycleClient(provider)


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05)


@pytest.fixture
def order_request():
    return OrderRequest(
        token="USDC",
        amount="25",
        fiat_currency="NGN",
        institution="GTBINGLA",
        account_identifier="0123456789",
        account_name="Ada Obi",
        recipient_memo="Invoice 1042",
        return_address=WALLET,
    )


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(db_session, provider):
    """HTTP client against the app with the mock provider and in-memory DB."""

    async def _session_override():
        yield db_session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_provider] = lambda: provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
