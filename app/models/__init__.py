from app.models.enums import AuditAction, OrderStatus, TERMINAL_STATUSES
from app.models.order import AuditLog, Base, PaymentOrder, ReferenceClaim

__all__ = [
    "Base",
    "PaymentOrder",
    "AuditLog",
    "ReferenceClaim",
    "AuditAction",
    "OrderStatus",
    "TERMINAL_STATUSES",
]
