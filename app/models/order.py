"""SQLAlchemy models for the off-ramp engine."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentOrder(Base):
    """
    Local record of an order submitted to the settlement provider.

    The provider stays the source of truth for status; this row caches the
    last status we observed so terminal orders are served without another
    provider call. The reference is the idempotency key for a submission.
    """

    __tablename__ = "payment_orders"

    id = Column(String(100), primary_key=True)  # provider order id
    reference = Column(String(100), nullable=False, unique=True, index=True)
    wallet_address = Column(String(42), nullable=True, index=True)

    # Conversion
    token = Column(String(10), nullable=False)
    network = Column(String(30), nullable=True)
    amount = Column(String(40), nullable=False)  # Decimal string, token units
    rate = Column(String(40), nullable=True)
    fiat_currency = Column(String(3), nullable=False)

    # Recipient
    institution = Column(String(50), nullable=False)
    account_identifier = Column(String(50), nullable=False)
    account_name = Column(String(200), nullable=True)
    memo = Column(Text, nullable=True)

    # Provider response
    status = Column(String(20), nullable=False, default="pending")
    receive_address = Column(String(100), nullable=True)
    valid_until = Column(String(40), nullable=True)
    sender_fee = Column(String(40), nullable=True)
    transaction_fee = Column(String(40), nullable=True)
    transaction_hash = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    audit_logs = relationship("AuditLog", back_populates="order", lazy="raise")


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every order event (creation, rejection, status change, failed lookup)
    gets an entry. These are append-only and never modified.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(100), ForeignKey("payment_orders.id"), nullable=True, index=True)
    reference = Column(String(100), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("PaymentOrder", back_populates="audit_logs")


class ReferenceClaim(Base):
    """
    A payment reference reserved before the order is sent to the provider.

    Committed ahead of the provider call, so a second submission with the
    same reference fails on the primary key instead of reaching the provider.
    Claims are kept after a failed submission: the provider may still have
    seen the reference.
    """

    __tablename__ = "reference_claims"

    reference = Column(String(100), primary_key=True)
    claimed_at = Column(DateTime(timezone=True), default=_utcnow)
