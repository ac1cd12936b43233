"""
Audit logging service for back-office actions.

An audit append runs after the admin action has committed. A failed append
is logged and rolled back; it never fails the action it describes.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from amour_backend.app.models.audit_log import AuditLog

logger = logging.getLogger("amour.audit")


class AuditAction:
    """Standardized audit action constants."""
    INFLUENCER_CREATED = "INFLUENCER_CREATED"
    INFLUENCER_PAID = "INFLUENCER_PAID"
    USAGE_LOG_PURGED = "USAGE_LOG_PURGED"
    DLQ_RETRIED = "DLQ_RETRIED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Optional[AuditLog]:
    """
    Log an admin event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of admin performing the action
        actor_username: Token subject of the admin
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance, or None if the append failed
    """
    try:
        audit_log = AuditLog(
            actor_id=actor_id,
            actor_username=actor_username,
            action=action,
            meta_data=metadata
        )
        db.add(audit_log)
        await db.commit()
        await db.refresh(audit_log)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(
            "Audit append failed",
            extra={"action": action, "actor_id": actor_id, "audit_metadata": metadata}
        )
        return None

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail, most recent first, optionally for one action.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if action:
        query = query.where(AuditLog.action == action)

    result = await db.execute(query.limit(limit))
    return result.scalars().all()
