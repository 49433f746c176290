"""
Mock settlement provider for local development and tests.

Simulates the settlement provider's behavior:
  - Configurable latency (default 100ms)
  - Configurable failure rate (default 5%)
  - Rate limiting simulation (429s)
  - Deterministic rates per fiat currency
  - Scripted order status progression: each status lookup advances the
    order one step along `status_script`

Never selected in production unless USE_MOCK_PROVIDER is set.
"""

import asyncio
import random
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from app.config import settings
from app.engine.retry import PermanentError, ProviderError, RateLimitError
from app.providers.base import (
    AccountVerification,
    Currency,
    Institution,
    ProviderOrder,
    ProviderOrderRequest,
    SettlementProvider,
)

# Fiat units per 1 stablecoin
MOCK_RATES = {
    "NGN": "1500.25",
    "KES": "129.40",
    "GHS": "15.10",
    "UGX": "3705.00",
    "TZS": "2580.00",
}

MOCK_INSTITUTIONS = {
    "NGN": [
        Institution(code="GTBINGLA", name="Guaranty Trust Bank", currency="NGN"),
        Institution(code="FBNINGLA", name="First Bank of Nigeria", currency="NGN"),
        Institution(code="OPAYNGPC", name="OPay", type="mobile_money", currency="NGN"),
    ],
    "KES": [
        Institution(code="SAFAKEPC", name="M-Pesa", type="mobile_money", currency="KES"),
        Institution(code="KCBLKENX", name="KCB Bank", currency="KES"),
    ],
}

DEFAULT_STATUS_SCRIPT = ("pending", "processing", "completed")


class MockSettlementProvider(SettlementProvider):
    """
    In-memory stand-in for the settlement provider.

    Records every call in `calls` so tests can assert that no network
    traffic happened (e.g. after a validation failure).
    """

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        rates: Optional[dict[str, str]] = None,
        status_script: Sequence[str] = DEFAULT_STATUS_SCRIPT,
    ):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._rates = dict(MOCK_RATES if rates is None else rates)
        self._status_script = tuple(status_script)
        self._orders: dict[str, ProviderOrder] = {}
        self._steps: dict[str, int] = {}
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return "mock_provider"

    async def _simulate(self, call: str) -> None:
        self.calls.append(call)

        # Simulate network latency
        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        # Simulate random failures
        roll = random.random()

        if roll < self._failure_rate * 0.5:
            # Rate limit (retriable)
            raise RateLimitError(
                message="Mock rate limit - too many requests",
                retry_after=1.0,
            )

        if roll < self._failure_rate:
            # Transient server error (retriable)
            raise ProviderError(
                message="Mock transient error - service temporarily unavailable",
                status_code=503,
                retriable=True,
                body='{"status": "error", "message": "service temporarily unavailable"}',
            )

    async def fetch_rate(self, token: str, amount: str, currency: str, network: str) -> str:
        await self._simulate("fetch_rate")
        rate = self._rates.get(currency.upper())
        if rate is None:
            raise PermanentError(
                f"Unsupported currency: {currency}",
                status_code=400,
                body='{"status": "error", "message": "Rate not available"}',
            )
        return rate

    async def list_currencies(self) -> list[Currency]:
        await self._simulate("list_currencies")
        return [Currency(code=code, name=code) for code in sorted(self._rates)]

    async def list_institutions(self, currency: str) -> list[Institution]:
        await self._simulate("list_institutions")
        return list(MOCK_INSTITUTIONS.get(currency.upper(), []))

    async def create_order(self, request: ProviderOrderRequest) -> ProviderOrder:
        await self._simulate("create_order")

        if request.recipient.currency.upper() not in self._rates:
            raise PermanentError(
                f"Unsupported currency: {request.recipient.currency}",
                status_code=400,
                body='{"status": "error", "message": "Currency not supported for payout"}',
            )

        now = datetime.now(timezone.utc)
        order = ProviderOrder(
            id=f"ord_{uuid.uuid4().hex[:16]}",
            status=self._status_script[0],
            reference=request.reference,
            amount=request.amount,
            token=request.token,
            network=request.network,
            receive_address=f"0x{uuid.uuid4().hex}{uuid.uuid4().hex[:8]}",
            valid_until=(now + timedelta(minutes=30)).isoformat(),
            sender_fee="0",
            transaction_fee="0",
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
        )
        self._orders[order.id] = order
        self._steps[order.id] = 0
        return replace(order)

    async def fetch_order(self, order_id: str) -> ProviderOrder:
        await self._simulate("fetch_order")
        order = self._orders.get(order_id)
        if order is None:
            raise ProviderError(
                f"Order not found: {order_id}",
                status_code=404,
                retriable=False,
                body='{"status": "error", "message": "Order not found"}',
            )

        step = min(self._steps[order_id] + 1, len(self._status_script) - 1)
        self._steps[order_id] = step
        order.status = self._status_script[step]
        order.updated_at = datetime.now(timezone.utc).isoformat()
        return replace(order)

    async def verify_account(self, institution: str, account_identifier: str) -> AccountVerification:
        await self._simulate("verify_account")
        if not account_identifier.isdigit():
            raise PermanentError(
                "Invalid account identifier",
                status_code=400,
                body='{"status": "error", "message": "Account not found"}',
            )
        return AccountVerification(
            account_name="Test Account",
            account_identifier=account_identifier,
            institution=institution,
        )
