"""Tests for the order lifecycle client."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.engine.errors import InvalidInput, OrderCreationFailed, OrderNotFound, OrderStatusUnavailable
from app.engine.orders import OrderHandle, OrderLifecycleClient
from app.engine.retry import PermanentError, ProviderError
from app.models.enums import OrderStatus
from app.providers.mock_provider import MockSettlementProvider


class FlakyStatusProvider(MockSettlementProvider):
    """Serves scripted status lookups: a status string or an exception per call."""

    def __init__(self, outcomes):
        super().__init__(failure_rate=0.0, latency_ms=0)
        self.outcomes = list(outcomes)

    async def fetch_order(self, order_id):
        self.calls.append("fetch_order")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        order = await super().fetch_order(order_id)
        order.status = outcome
        return order


class RejectingProvider(MockSettlementProvider):
    async def create_order(self, request):
        self.calls.append("create_order")
        raise PermanentError(
            "Paycrest API error: 400 Bad Request",
            body='{"status": "error", "message": "Invalid institution code"}',
        )


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_creates_pending_order(self, order_client, order_request):
        handle = await order_client.create_order(order_request)
        assert handle.order_id.startswith("ord_")
        assert handle.status == OrderStatus.PENDING
        assert handle.reference.startswith("nedapay-")
        assert handle.created_at.tzinfo is not None
        assert order_client.last_known(handle.order_id) == handle

    @pytest.mark.asyncio
    async def test_keeps_caller_reference(self, order_client, order_request):
        handle = await order_client.create_order(replace(order_request, reference="inv-42"))
        assert handle.reference == "inv-42"

    @pytest.mark.asyncio
    async def test_zero_amount_rejected_without_network_call(self, provider, order_client, order_request):
        with pytest.raises(InvalidInput) as exc_info:
            await order_client.create_order(replace(order_request, amount="0"))
        assert any("amount" in e.lower() for e in exc_info.value.errors)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_validation_reports_all_errors(self, provider, order_client, order_request):
        bad = replace(order_request, token="", institution="", account_identifier="")
        with pytest.raises(InvalidInput) as exc_info:
            await order_client.create_order(bad)
        assert len(exc_info.value.errors) == 3
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_rejection_carries_diagnostics(self, order_request):
        provider = RejectingProvider(failure_rate=0.0, latency_ms=0)
        client = OrderLifecycleClient(provider)
        with pytest.raises(OrderCreationFailed) as exc_info:
            await client.create_order(order_request)
        assert "Invalid institution code" in exc_info.value.detail
        assert exc_info.value.retriable is False
        # No automatic resubmission
        assert provider.calls == ["create_order"]

    @pytest.mark.asyncio
    async def test_unsupported_payout_currency(self, order_client, order_request):
        with pytest.raises(OrderCreationFailed):
            await order_client.create_order(replace(order_request, fiat_currency="XOF"))


class TestOrderStatus:
    @pytest.mark.asyncio
    async def test_progresses_to_completed(self, order_client, order_request):
        handle = await order_client.create_order(order_request)
        statuses = [(await order_client.get_order_status(handle.order_id)).status for _ in range(2)]
        assert statuses == [OrderStatus.PROCESSING, OrderStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_terminal_state_is_absorbing(self, provider, order_client, order_request):
        handle = await order_client.create_order(order_request)
        await order_client.get_order_status(handle.order_id)
        completed = await order_client.get_order_status(handle.order_id)
        assert completed.status == OrderStatus.COMPLETED
        calls_before = len(provider.calls)

        for _ in range(5):
            again = await order_client.get_order_status(handle.order_id)
            assert again.status == OrderStatus.COMPLETED
            assert again == completed
        assert len(provider.calls) == calls_before

    @pytest.mark.asyncio
    async def test_unknown_order(self, order_client):
        with pytest.raises(OrderNotFound) as exc_info:
            await order_client.get_order_status("ord_missing")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_empty_order_id(self, order_client):
        with pytest.raises(InvalidInput):
            await order_client.get_order_status("  ")

    @pytest.mark.asyncio
    async def test_transient_failure(self, order_request):
        provider = FlakyStatusProvider([ProviderError("Paycrest API error: 503", status_code=503), "processing"])
        client = OrderLifecycleClient(provider)
        handle = await client.create_order(order_request)

        with pytest.raises(OrderStatusUnavailable) as exc_info:
            await client.get_order_status(handle.order_id)
        assert exc_info.value.retriable is True

        # Caller may retry
        assert (await client.get_order_status(handle.order_id)).status == OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_unrecognised_status(self, order_request):
        provider = FlakyStatusProvider(["settled-ish"])
        client = OrderLifecycleClient(provider)
        handle = await client.create_order(order_request)
        with pytest.raises(OrderStatusUnavailable):
            await client.get_order_status(handle.order_id)

    @pytest.mark.asyncio
    async def test_backwards_status_ignored(self, order_request):
        provider = FlakyStatusProvider(["processing", "pending", "failed"])
        client = OrderLifecycleClient(provider)
        handle = await client.create_order(order_request)

        assert (await client.get_order_status(handle.order_id)).status == OrderStatus.PROCESSING
        assert (await client.get_order_status(handle.order_id)).status == OrderStatus.PROCESSING
        assert (await client.get_order_status(handle.order_id)).status == OrderStatus.FAILED


class TestExpire:
    @pytest.mark.asyncio
    async def test_expires_pending_order(self, order_client, order_request):
        handle = await order_client.create_order(order_request)
        expired = order_client.expire(handle.order_id)
        assert expired.status == OrderStatus.EXPIRED
        assert expired.order_id == handle.order_id
        # Absorbing: the provider is not consulted any more
        assert (await order_client.get_order_status(handle.order_id)).status == OrderStatus.EXPIRED

    def test_terminal_order_not_expired(self, order_client):
        completed = OrderHandle(
            order_id="ord_done",
            reference="ref",
            status=OrderStatus.COMPLETED,
            created_at=datetime.now(timezone.utc),
        )
        order_client.track(completed)
        assert order_client.expire("ord_done") == completed

    def test_unknown_order(self, order_client):
        with pytest.raises(OrderNotFound):
            order_client.expire("ord_nope")

    @pytest.mark.asyncio
    async def test_tracked_terminal_order_skips_provider(self, provider, order_client):
        order_client.track(OrderHandle(
            order_id="ord_seeded",
            reference="ref",
            status=OrderStatus.FAILED,
            created_at=datetime.now(timezone.utc),
        ))
        handle = await order_client.get_order_status("ord_seeded")
        assert handle.status == OrderStatus.FAILED
        assert provider.calls == []
