"""
Order endpoints.

POST /orders             - Validate, submit to the provider, persist and audit.
GET  /orders             - List local order records with filters.
GET  /orders/{id}        - Refresh status from the provider (terminal orders
                           are served from the local record).
GET  /orders/{id}/trace  - Full audit trail for an order.
"""

import json
from dataclasses import replace
from datetime import timezone
from decimal import Decimal
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_order_client
from app.audit.logger import append_note, log_event
from app.database import get_session
from app.engine.errors import InvalidInput, OrderCreationFailed, OrderNotFound, OrderStatusUnavailable
from app.engine.orders import OrderHandle, OrderLifecycleClient
from app.engine.references import generate_reference
from app.engine.validation import OrderRequest
from app.models.enums import AuditAction, OrderStatus
from app.models.order import AuditLog, PaymentOrder, ReferenceClaim

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderCreate(BaseModel):
    token: Optional[str] = None
    # Parsed by validate_order, which reports every violation at once
    amount: Optional[Union[str, Decimal]] = None
    fiat_currency: Optional[str] = None
    institution: Optional[str] = None
    account_identifier: Optional[str] = None
    account_name: str = ""
    memo: Optional[str] = None
    reference: Optional[str] = None
    network: Optional[str] = None
    rate: Optional[Union[str, Decimal]] = None
    return_address: Optional[str] = None

    def to_order_request(self) -> OrderRequest:
        return OrderRequest(
            token=self.token or "",
            amount=str(self.amount) if self.amount is not None else "",
            fiat_currency=self.fiat_currency or "",
            institution=self.institution or "",
            account_identifier=self.account_identifier or "",
            account_name=self.account_name,
            recipient_memo=self.memo,
            reference=self.reference,
            network=self.network,
            rate=str(self.rate) if self.rate is not None else None,
            return_address=self.return_address,
        )


class OrderDetail(BaseModel):
    id: str
    reference: str
    wallet_address: Optional[str]
    token: str
    network: Optional[str]
    amount: str
    rate: Optional[str]
    fiat_currency: str
    institution: str
    account_identifier: str
    account_name: Optional[str]
    status: str
    receive_address: Optional[str]
    valid_until: Optional[str]
    sender_fee: Optional[str]
    transaction_fee: Optional[str]
    transaction_hash: Optional[str]
    notes: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class AuditEntry(BaseModel):
    id: int
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


def _order_to_detail(o: PaymentOrder) -> OrderDetail:
    return OrderDetail(
        id=o.id,
        reference=o.reference,
        wallet_address=o.wallet_address,
        token=o.token,
        network=o.network,
        amount=o.amount,
        rate=o.rate,
        fiat_currency=o.fiat_currency,
        institution=o.institution,
        account_identifier=o.account_identifier,
        account_name=o.account_name,
        status=o.status,
        receive_address=o.receive_address,
        valid_until=o.valid_until,
        sender_fee=o.sender_fee,
        transaction_fee=o.transaction_fee,
        transaction_hash=o.transaction_hash,
        notes=o.notes,
        created_at=o.created_at.isoformat() if o.created_at else None,
        updated_at=o.updated_at.isoformat() if o.updated_at else None,
    )


def _record_to_handle(o: PaymentOrder) -> OrderHandle:
    created_at = o.created_at
    if created_at is not None and created_at.tzinfo is None:
        # SQLite drops tzinfo on round-trip
        created_at = created_at.replace(tzinfo=timezone.utc)
    return OrderHandle(
        order_id=o.id,
        reference=o.reference,
        status=OrderStatus(o.status),
        created_at=created_at,
        amount=o.amount,
        token=o.token,
        network=o.network,
        receive_address=o.receive_address,
        valid_until=o.valid_until,
        sender_fee=o.sender_fee,
        transaction_fee=o.transaction_fee,
        transaction_hash=o.transaction_hash,
    )


async def _claim_reference(session: AsyncSession, reference: str) -> None:
    """Reserve a payment reference, committed before the provider sees it."""
    session.add(ReferenceClaim(reference=reference))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise InvalidInput(f"Payment reference already used: {reference}") from None


@router.post("", status_code=201)
async def create_order(
    body: OrderCreate,
    session: AsyncSession = Depends(get_session),
    client: OrderLifecycleClient = Depends(get_order_client),
):
    """
    Submit a payment order.

    Validation failures are reported in full (400) and never reach the
    provider. The reference is claimed before submission, so a reused
    reference is rejected (400) even when two submissions race. A provider
    rejection is reported with its diagnostic text (500) and is not retried.
    """
    request = body.to_order_request()

    try:
        result = client.validate(request)
        if not result.valid:
            raise InvalidInput(f"Validation failed: {', '.join(result.errors)}", errors=result.errors)
        if not request.reference:
            request = replace(request, reference=generate_reference())
        await _claim_reference(session, request.reference)
        handle = await client.create_order(request)
    except (InvalidInput, OrderCreationFailed) as e:
        details = {"error": e.message}
        if isinstance(e, InvalidInput):
            details["errors"] = e.errors
        if e.detail:
            details["provider_detail"] = e.detail[:500]
        await log_event(session, AuditAction.ORDER_REJECTED, reference=request.reference, details=details)
        await session.commit()
        raise

    record = PaymentOrder(
        id=handle.order_id,
        reference=handle.reference,
        wallet_address=request.return_address,
        token=request.token.strip().upper(),
        network=handle.network or request.network or client.network,
        amount=request.amount,
        rate=request.rate,
        fiat_currency=request.fiat_currency.strip().upper(),
        institution=request.institution.strip(),
        account_identifier=request.account_identifier.strip(),
        account_name=request.account_name or None,
        memo=request.recipient_memo,
        status=handle.status.value,
        receive_address=handle.receive_address,
        valid_until=handle.valid_until,
        sender_fee=handle.sender_fee,
        transaction_fee=handle.transaction_fee,
        notes=append_note(None, f"Order created: {handle.order_id}"),
    )
    session.add(record)
    await session.flush()
    await log_event(session, AuditAction.ORDER_CREATED, order_id=handle.order_id, reference=handle.reference, details={
        "amount": record.amount,
        "token": record.token,
        "fiat_currency": record.fiat_currency,
        "institution": record.institution,
        "status": handle.status.value,
    })
    await session.commit()

    return {"success": True, "order": _order_to_detail(record).model_dump()}


@router.get("")
async def list_orders(
    status: Optional[str] = Query(None, description="Filter by status"),
    currency: Optional[str] = Query(None, description="Filter by fiat currency"),
    wallet: Optional[str] = Query(None, description="Filter by return wallet address"),
    session: AsyncSession = Depends(get_session),
):
    """List local order records with optional filters."""
    stmt = select(PaymentOrder)

    if status:
        stmt = stmt.where(PaymentOrder.status == status.lower())
    if currency:
        stmt = stmt.where(PaymentOrder.fiat_currency == currency.upper())
    if wallet:
        stmt = stmt.where(PaymentOrder.wallet_address == wallet)

    stmt = stmt.order_by(PaymentOrder.created_at.desc())
    result = await session.execute(stmt)
    return {"success": True, "orders": [_order_to_detail(o).model_dump() for o in result.scalars().all()]}


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    client: OrderLifecycleClient = Depends(get_order_client),
):
    """Current order status, refreshed from the provider unless terminal."""
    record = await session.get(PaymentOrder, order_id)
    if record is not None:
        client.track(_record_to_handle(record))

    try:
        handle = await client.get_order_status(order_id)
    except OrderStatusUnavailable as e:
        if record is not None:
            await log_event(session, AuditAction.STATUS_UNAVAILABLE, order_id=order_id, reference=record.reference, details={
                "error": e.message,
                "provider_detail": (e.detail or "")[:500],
            })
            await session.commit()
        raise

    if record is not None and record.status != handle.status.value:
        await log_event(session, AuditAction.STATUS_CHANGED, order_id=order_id, reference=record.reference, details={
            "from": record.status,
            "to": handle.status.value,
        })
        record.notes = append_note(record.notes, f"Status {record.status} -> {handle.status.value}")
        record.status = handle.status.value
        record.transaction_hash = handle.transaction_hash or record.transaction_hash
        await session.commit()

    return {"success": True, "order": handle.to_dict()}


@router.get("/{order_id}/trace")
async def get_order_trace(order_id: str, session: AsyncSession = Depends(get_session)):
    """
    Full audit trail for an order.

    Returns the order record plus every audit log entry, ordered
    chronologically.
    """
    record = await session.get(PaymentOrder, order_id)
    if record is None:
        raise OrderNotFound(f"Order not found: {order_id}")

    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.order_id == order_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )

    audit_trail = []
    for log in result.scalars().all():
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            action=log.action,
            details=details,
            timestamp=log.timestamp.isoformat() if log.timestamp else None,
        ).model_dump())

    return {"success": True, "order": _order_to_detail(record).model_dump(), "audit_trail": audit_trail}
