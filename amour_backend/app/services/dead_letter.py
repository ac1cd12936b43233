"""
Dead letter capture and replay.

Supplementary writes (audit appends, usage log rows, aggregate increments)
never fail the primary operation. When one fails it is logged and parked
here with enough payload to replay it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.models.dlq import DeadLetterQueue, DLQStatus

logger = logging.getLogger("amour.dlq")

ReplayHandler = Callable[[AsyncSession, Dict[str, Any]], Awaitable[None]]

_replay_handlers: Dict[str, ReplayHandler] = {}


def replay_handler(task_name: str):
    """Register the coroutine that replays a dead-lettered task."""
    def decorator(func: ReplayHandler) -> ReplayHandler:
        _replay_handlers[task_name] = func
        return func
    return decorator


class DeadLetterService:

    @staticmethod
    async def capture(
        db: AsyncSession,
        task_name: str,
        error: BaseException,
        payload: Dict[str, Any]
    ) -> Optional[DeadLetterQueue]:
        """
        Park a failed write.

        The session is rolled back first, since the failure usually left it
        unusable. If the store itself is down this fails too, which is logged
        with the payload so the write can still be reconstructed.
        """
        try:
            await db.rollback()
            item = DeadLetterQueue(
                task_name=task_name,
                error_message=f"{type(error).__name__}: {error}",
                payload=jsonable_encoder(payload),
                status=DLQStatus.FAILED
            )
            db.add(item)
            await db.commit()
        except SQLAlchemyError:
            logger.exception(
                "Dead letter capture failed",
                extra={"task_name": task_name, "payload": jsonable_encoder(payload)}
            )
            return None

        logger.warning(
            "Captured failed task in DLQ",
            extra={"task_name": task_name, "dlq_id": item.id}
        )
        return item

    @staticmethod
    async def replay(db: AsyncSession, item: DeadLetterQueue) -> DeadLetterQueue:
        """
        Re-run a dead-lettered write and mark it PROCESSED.

        Raises:
            ValueError: unknown task or item already processed
        """
        if item.status == DLQStatus.PROCESSED:
            raise ValueError(f"DLQ item {item.id} was already processed")

        handler = _replay_handlers.get(item.task_name)
        if handler is None:
            raise ValueError(f"No replay handler for task '{item.task_name}'")

        item_id, task_name = item.id, item.task_name
        item.status = DLQStatus.RETRYING
        item.retry_count += 1
        item.last_retry_at = datetime.now(timezone.utc)
        await db.commit()

        try:
            await handler(db, item.payload or {})
            item.status = DLQStatus.PROCESSED
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            await db.refresh(item)
            item.status = DLQStatus.FAILED
            item.error_message = f"{type(exc).__name__}: {exc}"
            await db.commit()
            logger.error("DLQ replay failed", extra={"dlq_id": item_id, "task_name": task_name})
            raise

        return item

    @staticmethod
    async def list_items(db: AsyncSession, status: Optional[DLQStatus] = None, limit: int = 100) -> list[DeadLetterQueue]:
        query = select(DeadLetterQueue).order_by(desc(DeadLetterQueue.created_at), desc(DeadLetterQueue.id))
        if status:
            query = query.where(DeadLetterQueue.status == status)
        result = await db.execute(query.limit(limit))
        return result.scalars().all()
