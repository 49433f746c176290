"""Integration tests for the HTTP API."""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import get_provider
from app.database import get_session
from app.main import app
from app.models.enums import AuditAction
from app.models.order import AuditLog, Base, PaymentOrder
from app.providers.mock_provider import MockSettlementProvider

WALLET = "0x" + "ab" * 20

ORDER_BODY = {
    "token": "USDC",
    "amount": "25",
    "fiat_currency": "NGN",
    "institution": "GTBINGLA",
    "account_identifier": "0123456789",
    "account_name": "Ada Obi",
    "memo": "Invoice 1042",
    "return_address": WALLET,
}


async def create_order(api_client, **overrides):
    resp = await api_client.post("/api/orders", json={**ORDER_BODY, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()["order"]


@pytest.mark.asyncio
async def test_health(api_client):
    resp = await api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "status": "ok", "provider": "mock_provider"}


class TestRates:
    @pytest.mark.asyncio
    async def test_quote(self, api_client):
        resp = await api_client.get("/api/rates", params={"token": "USDC", "amount": "10", "currency": "NGN"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["quote"]["rate"] == "1500.25"
        assert data["quote"]["receive_amount"] == "15002.50"
        assert data["display"] == "1 USDC = 1,500.25 NGN"
        assert data["receive_display"] == "15,002.50 NGN"

    @pytest.mark.asyncio
    async def test_total_shown_at_token_precision(self, api_client):
        resp = await api_client.get("/api/rates", params={"token": "cUSD", "amount": "10", "currency": "KES"})
        assert resp.status_code == 200
        # 10 + 0.5% sender fee + 0.1 default transaction fee
        assert resp.json()["total_display"] == "10.150000 CUSD"

    @pytest.mark.asyncio
    async def test_missing_params(self, provider, api_client):
        resp = await api_client.get("/api/rates", params={"token": "USDC"})
        assert resp.status_code == 400
        data = resp.json()
        assert data["success"] is False
        assert len(data["errors"]) == 2
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_currency(self, api_client):
        resp = await api_client.get("/api/rates", params={"token": "USDC", "amount": "1", "currency": "XOF"})
        assert resp.status_code == 500
        assert resp.json()["success"] is False


class TestCatalog:
    @pytest.mark.asyncio
    async def test_currencies(self, api_client):
        resp = await api_client.get("/api/currencies")
        assert resp.status_code == 200
        codes = {c["code"] for c in resp.json()["currencies"]}
        assert {"NGN", "KES"} <= codes

    @pytest.mark.asyncio
    async def test_institutions(self, api_client):
        resp = await api_client.get("/api/institutions", params={"currency": "ngn"})
        assert resp.status_code == 200
        assert "GTBINGLA" in [i["code"] for i in resp.json()["institutions"]]

    @pytest.mark.asyncio
    async def test_institutions_require_currency(self, api_client):
        resp = await api_client.get("/api/institutions")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing currency parameter"

    @pytest.mark.asyncio
    async def test_verify_account(self, api_client):
        resp = await api_client.post(
            "/api/verify-account",
            json={"institution": "GTBINGLA", "account_identifier": "0123456789"},
        )
        assert resp.status_code == 200
        assert resp.json()["account"]["account_name"] == "Test Account"

    @pytest.mark.asyncio
    async def test_verify_account_missing_fields(self, api_client):
        resp = await api_client.post("/api/verify-account", json={})
        assert resp.status_code == 400
        assert len(resp.json()["errors"]) == 2

    @pytest.mark.asyncio
    async def test_verify_account_rejected(self, api_client):
        resp = await api_client.post(
            "/api/verify-account",
            json={"institution": "GTBINGLA", "account_identifier": "not-an-account"},
        )
        assert resp.status_code == 500
        assert "Account not found" in resp.json()["detail"]


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_created_and_audited(self, api_client, db_session):
        order = await create_order(api_client)
        assert order["status"] == "pending"
        assert order["reference"].startswith("nedapay-")
        assert order["wallet_address"] == WALLET

        record = await db_session.get(PaymentOrder, order["id"])
        assert record is not None
        logs = (await db_session.execute(
            select(AuditLog).where(AuditLog.order_id == order["id"])
        )).scalars().all()
        assert [log.action for log in logs] == [AuditAction.ORDER_CREATED.value]

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, provider, api_client, db_session):
        resp = await api_client.post("/api/orders", json={**ORDER_BODY, "amount": "0"})
        assert resp.status_code == 400
        data = resp.json()
        assert data["success"] is False
        assert "Amount must be greater than 0" in data["errors"]
        assert provider.calls == []

        logs = (await db_session.execute(select(AuditLog))).scalars().all()
        assert [log.action for log in logs] == [AuditAction.ORDER_REJECTED.value]

    @pytest.mark.asyncio
    async def test_non_numeric_amount_reported_with_other_errors(self, provider, api_client, db_session):
        body = {**ORDER_BODY, "amount": "lots"}
        del body["institution"]

        resp = await api_client.post("/api/orders", json=body)
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert "Amount must be numeric: lots" in errors
        assert "Recipient institution is required" in errors
        assert provider.calls == []

        logs = (await db_session.execute(select(AuditLog))).scalars().all()
        assert [log.action for log in logs] == [AuditAction.ORDER_REJECTED.value]

    @pytest.mark.asyncio
    async def test_numeric_json_amount(self, api_client):
        order = await create_order(api_client, amount=25)
        assert order["amount"] == "25"

    @pytest.mark.asyncio
    async def test_duplicate_reference(self, provider, api_client):
        await create_order(api_client, reference="inv-1042")
        calls = len(provider.calls)

        resp = await api_client.post("/api/orders", json={**ORDER_BODY, "reference": "inv-1042"})
        assert resp.status_code == 400
        assert "already used" in resp.json()["error"]
        assert len(provider.calls) == calls

    @pytest.mark.asyncio
    async def test_provider_rejection(self, api_client, db_session):
        resp = await api_client.post("/api/orders", json={**ORDER_BODY, "fiat_currency": "XOF"})
        assert resp.status_code == 500
        data = resp.json()
        assert data["success"] is False
        assert "Currency not supported" in data["detail"]

        count = len((await db_session.execute(select(PaymentOrder))).scalars().all())
        assert count == 0


class TestOrderStatus:
    @pytest.mark.asyncio
    async def test_progression_and_terminal_cache(self, provider, api_client, db_session):
        order = await create_order(api_client)

        statuses = []
        for _ in range(2):
            resp = await api_client.get(f"/api/orders/{order['id']}")
            assert resp.status_code == 200
            statuses.append(resp.json()["order"]["status"])
        assert statuses == ["processing", "completed"]

        calls = len(provider.calls)
        resp = await api_client.get(f"/api/orders/{order['id']}")
        assert resp.json()["order"]["status"] == "completed"
        assert len(provider.calls) == calls

        record = await db_session.get(PaymentOrder, order["id"])
        assert record.status == "completed"

    @pytest.mark.asyncio
    async def test_unknown_order(self, api_client):
        resp = await api_client.get("/api/orders/ord_missing")
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    @pytest.mark.asyncio
    async def test_trace(self, api_client):
        order = await create_order(api_client)
        await api_client.get(f"/api/orders/{order['id']}")
        await api_client.get(f"/api/orders/{order['id']}")

        resp = await api_client.get(f"/api/orders/{order['id']}/trace")
        assert resp.status_code == 200
        trail = resp.json()["audit_trail"]
        assert [entry["action"] for entry in trail] == [
            AuditAction.ORDER_CREATED.value,
            AuditAction.STATUS_CHANGED.value,
            AuditAction.STATUS_CHANGED.value,
        ]
        assert trail[-1]["details"] == {"from": "processing", "to": "completed"}

    @pytest.mark.asyncio
    async def test_trace_unknown_order(self, api_client):
        resp = await api_client.get("/api/orders/ord_missing/trace")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list_with_filters(self, api_client):
        await create_order(api_client)
        await create_order(api_client, fiat_currency="KES", institution="SAFAKEPC")

        resp = await api_client.get("/api/orders", params={"currency": "kes"})
        orders = resp.json()["orders"]
        assert len(orders) == 1
        assert orders[0]["fiat_currency"] == "KES"

        resp = await api_client.get("/api/orders", params={"wallet": WALLET})
        assert len(resp.json()["orders"]) == 2


@pytest_asyncio.fixture
async def shared_db_client(tmp_path):
    """
    HTTP client where every request gets its own session on a file database,
    and the provider is slow enough for requests to overlap.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    provider = MockSettlementProvider(failure_rate=0.0, latency_ms=50)

    async def _session_override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_provider] = lambda: provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, provider, session_factory

    app.dependency_overrides.clear()
    await engine.dispose()


class TestConcurrentSubmission:
    @pytest.mark.asyncio
    async def test_same_reference_reaches_provider_once(self, shared_db_client):
        client, provider, session_factory = shared_db_client
        body = {**ORDER_BODY, "reference": "inv-race"}

        first, second = await asyncio.gather(
            client.post("/api/orders", json=body),
            client.post("/api/orders", json=body),
        )

        assert sorted([first.status_code, second.status_code]) == [201, 400]
        rejected = first if first.status_code == 400 else second
        assert "already used" in rejected.json()["error"]
        assert provider.calls.count("create_order") == 1

        async with session_factory() as session:
            count = (await session.execute(
                select(func.count()).select_from(PaymentOrder).where(PaymentOrder.reference == "inv-race")
            )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_distinct_references_both_created(self, shared_db_client):
        client, provider, _ = shared_db_client

        first, second = await asyncio.gather(
            client.post("/api/orders", json=ORDER_BODY),
            client.post("/api/orders", json=ORDER_BODY),
        )

        assert [first.status_code, second.status_code] == [201, 201]
        assert first.json()["order"]["reference"] != second.json()["order"]["reference"]
        assert provider.calls.count("create_order") == 2
