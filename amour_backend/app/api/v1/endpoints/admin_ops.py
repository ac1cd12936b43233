"""
Admin Operations API Endpoints.

Usage log maintenance and dead letter replay.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from amour_backend.app.db.session import get_db
from amour_backend.app.models.dlq import DeadLetterQueue, DLQStatus
from amour_backend.app.core.guards import require_admin
from amour_backend.app.services.audit import log_event, AuditAction
from amour_backend.app.services.dead_letter import DeadLetterService
from amour_backend.app.services.usage_accounting import UsageAccountingService

# Replay handlers register on import
import amour_backend.app.domain.billing.credit_ledger  # noqa: F401
import amour_backend.app.domain.billing.payout_ledger  # noqa: F401

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/purge-usage-log")
async def purge_usage_log(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete usage log rows older than the retention window.
    Aggregate totals are not affected.
    """
    purged = await UsageAccountingService.purge_expired_events(db)

    await log_event(
        db=db,
        action=AuditAction.USAGE_LOG_PURGED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        metadata={"rows_purged": purged}
    )
    return {"success": True, "message": "Usage log purge completed", "rows_purged": purged}


@router.get("/dlq")
async def list_dlq_items(
    status: Optional[DLQStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List dead-lettered writes, newest first."""
    items = await DeadLetterService.list_items(db, status=status, limit=limit)
    return {
        "success": True,
        "data": [
            {
                "id": item.id,
                "task_name": item.task_name,
                "error_message": item.error_message,
                "payload": item.payload,
                "status": item.status.value,
                "retry_count": item.retry_count,
                "created_at": item.created_at,
                "last_retry_at": item.last_retry_at,
            }
            for item in items
        ]
    }


@router.post("/dlq/{dlq_id}/retry")
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Replay a failed write from the Dead Letter Queue.
    The write and the PROCESSED mark commit together, so an item replays once.
    """
    result = await db.execute(select(DeadLetterQueue).where(DeadLetterQueue.id == dlq_id))
    item = result.scalar_one_or_none()

    if not item:
        raise HTTPException(status_code=404, detail="DLQ item not found")

    try:
        item = await DeadLetterService.replay(db, item)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    task_name, item_status = item.task_name, item.status.value

    await log_event(
        db=db,
        action=AuditAction.DLQ_RETRIED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        metadata={"dlq_id": dlq_id, "task_name": task_name}
    )
    return {"success": True, "message": f"Task {task_name} replayed", "status": item_status}
