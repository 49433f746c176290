"""
Order lifecycle client: validate -> create -> poll status -> expire.

Status state machine:

    PENDING -> PROCESSING -> COMPLETED | FAILED
    any non-terminal state -> EXPIRED   (on the caller's timeout)

The provider is the source of truth for status, with two local guards:
  - Terminal states are absorbing. Once an order is COMPLETED, FAILED or
    EXPIRED, further status lookups return the last known handle without
    calling the provider.
  - A provider status that moves backwards in the lifecycle is ignored.

Order creation is never retried automatically.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from app.config import settings
from app.engine.errors import InvalidInput, OrderCreationFailed, OrderNotFound, OrderStatusUnavailable
from app.engine.references import generate_reference
from app.engine.retry import ProviderError
from app.engine.validation import OrderRequest, ValidationResult, parse_decimal, validate_order
from app.models.enums import OrderStatus
from app.providers.base import ProviderOrder, ProviderOrderRequest, Recipient, SettlementProvider

logger = logging.getLogger("offramp.orders")


@dataclass(frozen=True)
class OrderHandle:
    """Caller-owned view of a provider order."""

    order_id: str
    reference: str
    status: OrderStatus
    created_at: datetime
    amount: Optional[str] = None
    token: Optional[str] = None
    network: Optional[str] = None
    receive_address: Optional[str] = None
    valid_until: Optional[str] = None
    sender_fee: Optional[str] = None
    transaction_fee: Optional[str] = None
    updated_at: Optional[datetime] = None
    transaction_hash: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "reference": self.reference,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "amount": self.amount,
            "token": self.token,
            "network": self.network,
            "receive_address": self.receive_address,
            "valid_until": self.valid_until,
            "sender_fee": self.sender_fee,
            "transaction_fee": self.transaction_fee,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "transaction_hash": self.transaction_hash,
        }


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise OrderStatusUnavailable(f"Provider reported an unknown order status: {value}") from None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _handle_from_provider(order: ProviderOrder, fallback_reference: str = "") -> OrderHandle:
    now = datetime.now(timezone.utc)
    return OrderHandle(
        order_id=order.id,
        reference=order.reference or fallback_reference,
        status=parse_status(order.status),
        created_at=_parse_timestamp(order.created_at) or now,
        amount=order.amount or None,
        token=order.token or None,
        network=order.network or None,
        receive_address=order.receive_address,
        valid_until=order.valid_until,
        sender_fee=order.sender_fee,
        transaction_fee=order.transaction_fee,
        updated_at=_parse_timestamp(order.updated_at) or now,
        transaction_hash=order.transaction_hash,
    )


class OrderLifecycleClient:
    """
    Creates and tracks settlement orders for one session.

    Last-known handles live on the instance, not in module state.
    """

    def __init__(self, provider: SettlementProvider, network: Optional[str] = None):
        self.provider = provider
        self.network = network or settings.default_network
        self._orders: dict[str, OrderHandle] = {}

    def validate(self, request: OrderRequest) -> ValidationResult:
        return validate_order(request)

    def track(self, handle: OrderHandle) -> None:
        """Seed the last-known state for an order (e.g. from a stored record)."""
        self._orders[handle.order_id] = handle

    def last_known(self, order_id: str) -> Optional[OrderHandle]:
        return self._orders.get(order_id)

    async def create_order(self, request: OrderRequest) -> OrderHandle:
        """
        Validate and submit an order.

        Raises:
            InvalidInput: validation failed; nothing was sent.
            OrderCreationFailed: the provider rejected or failed the request.
                `detail` carries the provider's raw error text.
        """
        result = self.validate(request)
        if not result.valid:
            logger.info("Order rejected by validation: %s", "; ".join(result.errors))
            raise InvalidInput(f"Validation failed: {', '.join(result.errors)}", errors=result.errors)

        reference = request.reference or generate_reference()
        amount: Decimal = parse_decimal(request.amount)
        rate = parse_decimal(request.rate) if request.rate else None

        provider_request = ProviderOrderRequest(
            amount=str(amount),
            token=request.token.strip().upper(),
            network=request.network or self.network,
            recipient=Recipient(
                institution=request.institution.strip(),
                account_identifier=request.account_identifier.strip(),
                account_name=(request.account_name or "").strip(),
                currency=request.fiat_currency.strip().upper(),
                memo=request.recipient_memo or "",
            ),
            reference=reference,
            rate=str(rate) if rate is not None else None,
            return_address=request.return_address,
        )

        try:
            order = await self.provider.create_order(provider_request)
        except ProviderError as e:
            logger.error(
                "Order creation failed for reference %s: %s | %s",
                reference, e, (e.body or "")[:500],
            )
            raise OrderCreationFailed(f"Failed to create payment order: {e}", detail=e.body or str(e)) from e

        if not order.id:
            raise OrderCreationFailed("Provider response did not include an order id", detail=str(order))

        try:
            handle = _handle_from_provider(order, fallback_reference=reference)
        except OrderStatusUnavailable as e:
            raise OrderCreationFailed(str(e), detail=order.status) from e

        self._orders[handle.order_id] = handle
        logger.info(
            "Order %s created: ref=%s %s %s -> %s (%s)",
            handle.order_id, reference, amount, provider_request.token,
            provider_request.recipient.currency, handle.status.value,
        )
        return handle

    async def get_order_status(self, order_id: str) -> OrderHandle:
        """
        Refresh an order's status from the provider.

        Raises:
            InvalidInput: empty order id.
            OrderNotFound: the provider has no record of the order.
            OrderStatusUnavailable: transient upstream failure; retry later.
        """
        if not order_id or not order_id.strip():
            raise InvalidInput("Order id is required")
        order_id = order_id.strip()

        previous = self._orders.get(order_id)
        if previous is not None and previous.is_terminal:
            return previous

        try:
            order = await self.provider.fetch_order(order_id)
        except ProviderError as e:
            if e.status_code == 404:
                raise OrderNotFound(f"Order not found: {order_id}", detail=e.body) from e
            logger.warning("Status lookup failed for order %s: %s | %s", order_id, e, (e.body or "")[:200])
            raise OrderStatusUnavailable(f"Order status unavailable for {order_id}", detail=e.body) from e

        if not order.id:
            order.id = order_id
        current = _handle_from_provider(order, fallback_reference=previous.reference if previous else "")
        handle = self._advance(previous, current)
        self._orders[order_id] = handle
        return handle

    def expire(self, order_id: str) -> OrderHandle:
        """Move a non-terminal order to EXPIRED after the caller's timeout."""
        handle = self._orders.get(order_id)
        if handle is None:
            raise OrderNotFound(f"Order not found: {order_id}")
        if handle.is_terminal:
            return handle

        expired = replace(handle, status=OrderStatus.EXPIRED, updated_at=datetime.now(timezone.utc))
        self._orders[order_id] = expired
        logger.info("Order %s expired while %s", order_id, handle.status.value)
        return expired

    @staticmethod
    def _advance(previous: Optional[OrderHandle], current: OrderHandle) -> OrderHandle:
        if previous is None:
            return current
        if current.status.rank < previous.status.rank:
            logger.warning(
                "Ignoring backwards status for order %s: %s -> %s",
                current.order_id, previous.status.value, current.status.value,
            )
            return replace(current, status=previous.status)
        if current.status != previous.status:
            logger.info(
                "Order %s status %s -> %s",
                current.order_id, previous.status.value, current.status.value,
            )
        return current
