"""Enumerations for the off-ramp domain model."""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle states for a settlement order."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the lifecycle; terminal states share the highest rank."""
        if self.is_terminal:
            return 2
        return 1 if self is OrderStatus.PROCESSING else 0


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.EXPIRED})


class AuditAction(str, Enum):
    """Actions recorded in the order audit trail."""

    ORDER_CREATED = "order_created"
    ORDER_REJECTED = "order_rejected"
    STATUS_CHANGED = "status_changed"
    STATUS_UNAVAILABLE = "status_unavailable"
