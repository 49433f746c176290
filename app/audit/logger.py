"""
Immutable audit trail for order operations.

Every order event gets an append-only audit log entry with:
  - Order ID (provider order, once one exists)
  - Reference (our payment reference, present even for rejected submissions)
  - Action (what happened)
  - Details (status transitions, provider diagnostics)
  - Timestamp (UTC)

These records are never modified or deleted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import AuditAction
from app.models.order import AuditLog

logger = logging.getLogger("offramp.audit")


async def log_event(
    session: AsyncSession,
    action: AuditAction,
    order_id: Optional[str] = None,
    reference: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Create an immutable audit log entry.

    Args:
        session: Database session. The caller commits.
        action: What happened.
        order_id: Provider order the event relates to.
        reference: Payment reference the event relates to.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created AuditLog record.
    """
    entry = AuditLog(
        order_id=order_id,
        reference=reference,
        action=action.value,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | order=%s ref=%s action=%s | %s",
        order_id or "-",
        reference or "-",
        action.value,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry


def append_note(existing_notes: Optional[str], message: str) -> str:
    """Append a timestamped line to an order's running notes."""
    prefix = f"[{datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}] "
    new_note = prefix + message
    if not existing_notes:
        return new_note
    return f"{existing_notes}\n{new_note}"
