"""
Usage Accounting Service.

Two stores with decoupled failure modes:
- usage_events: detailed per-call log, visible for the TTL window (48h) and
  purged afterwards
- usage_aggregates: permanent per-category counters plus "_all", only ever
  incremented, the source of truth for reporting

Reads keep the two apart: window-bounded items/total next to all-time totals.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from fastapi import BackgroundTasks, Depends
from sqlalchemy import select, delete, desc, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from amour_backend.app.core.config import settings
from amour_backend.app.core.exceptions import InvalidCategoryError
from amour_backend.app.db.session import get_session_factory
from amour_backend.app.models.account import Account
from amour_backend.app.models.enums import UsageCategory, ALL_CATEGORIES_KEY
from amour_backend.app.models.usage_aggregate import UsageAggregate
from amour_backend.app.models.usage_event import UsageEvent
from amour_backend.app.services.dead_letter import DeadLetterService, replay_handler

logger = logging.getLogger("amour.usage")

USAGE_EVENT_TASK = "usage_event_insert"
USAGE_AGGREGATE_TASK = "usage_aggregate_increment"

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: Optional[int] = None

    def __post_init__(self):
        self.prompt_tokens = int(self.prompt_tokens or 0)
        self.completion_tokens = int(self.completion_tokens or 0)
        if self.total_tokens is None:
            self.total_tokens = self.prompt_tokens + self.completion_tokens
        self.total_tokens = int(self.total_tokens)


def _coerce_token_usage(raw: Union[TokenUsage, Mapping[str, Any], None]) -> TokenUsage:
    """Raises TypeError or ValueError on counts that are not integers."""
    if isinstance(raw, TokenUsage):
        return raw
    if raw is None:
        return TokenUsage()
    if not isinstance(raw, Mapping):
        raise TypeError(f"Unsupported token usage: {type(raw).__name__}")
    return TokenUsage(
        prompt_tokens=raw.get("prompt_tokens"),
        completion_tokens=raw.get("completion_tokens"),
        total_tokens=raw.get("total_tokens")
    )


@dataclass
class UsageTotals:
    cost_inr: float = 0.0
    tokens: int = 0
    requests: int = 0


@dataclass
class UsageStats:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    totals: UsageTotals = field(default_factory=UsageTotals)


def usage_window_start(now: Optional[datetime] = None) -> datetime:
    """Oldest created_at still inside the detailed log window."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(hours=settings.usage_log_ttl_hours)


def parse_category_filter(category: Optional[str]) -> Optional[UsageCategory]:
    """None or "all" means every category."""
    if category in (None, "", "all"):
        return None
    try:
        return UsageCategory(category)
    except ValueError:
        raise InvalidCategoryError(category)


def _aggregate_upsert(dialect_name: str, category: str, usage: TokenUsage, cost_inr: float):
    try:
        insert = _UPSERT_DIALECTS[dialect_name]
    except KeyError:
        raise NotImplementedError(f"Aggregate upsert not supported on '{dialect_name}'")

    rows = [
        {
            "category": key,
            "total_requests": 1,
            "total_prompt_tokens": usage.prompt_tokens,
            "total_completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "total_cost_inr": cost_inr,
        }
        for key in (category, ALL_CATEGORIES_KEY)
    ]
    stmt = insert(UsageAggregate).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=[UsageAggregate.category],
        set_={
            "total_requests": UsageAggregate.total_requests + stmt.excluded.total_requests,
            "total_prompt_tokens": UsageAggregate.total_prompt_tokens + stmt.excluded.total_prompt_tokens,
            "total_completion_tokens": UsageAggregate.total_completion_tokens + stmt.excluded.total_completion_tokens,
            "total_tokens": UsageAggregate.total_tokens + stmt.excluded.total_tokens,
            "total_cost_inr": UsageAggregate.total_cost_inr + stmt.excluded.total_cost_inr,
            "updated_at": func.now(),
        }
    )


class UsageAccountingService:

    @staticmethod
    async def record_usage(
        session_factory: async_sessionmaker,
        account_id: int,
        category: str,
        input: Any,
        output: Any,
        model: Optional[str],
        token_usage: Union[TokenUsage, Mapping[str, Any]],
        cost_inr: float
    ) -> None:
        """
        Record one AI generation call. Never raises.

        token_usage may be a TokenUsage or the provider's raw usage mapping
        (prompt_tokens / completion_tokens / total_tokens). Calls with an
        unknown category or non-numeric counts or cost are logged and dropped.

        The log insert and the aggregate increment run in separate
        transactions; a failure in one is dead-lettered and does not
        stop the other.
        """
        try:
            usage_category = UsageCategory(category)
        except ValueError:
            logger.error("Usage not recorded: unknown category", extra={"category": category})
            return

        try:
            usage = _coerce_token_usage(token_usage)
            cost = float(cost_inr or 0.0)
            if not math.isfinite(cost):
                raise ValueError(f"Non-finite cost: {cost_inr!r}")
        except (TypeError, ValueError):
            logger.error(
                "Usage not recorded: malformed token usage or cost",
                extra={"category": usage_category.value, "token_usage": repr(token_usage), "cost_inr": repr(cost_inr)}
            )
            return

        async with session_factory() as db:
            await UsageAccountingService._insert_event(
                db, account_id, usage_category, input, output, model, usage, cost
            )

        async with session_factory() as db:
            await UsageAccountingService._increment_aggregates(db, usage_category, usage, cost)

    @staticmethod
    async def _insert_event(
        db: AsyncSession,
        account_id: int,
        category: UsageCategory,
        input: Any,
        output: Any,
        model: Optional[str],
        usage: TokenUsage,
        cost_inr: float
    ) -> None:
        try:
            db.add(UsageEvent(
                account_id=account_id,
                category=category,
                input=input,
                output=output,
                model=model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
                cost_inr=cost_inr
            ))
            await db.commit()
        except SQLAlchemyError as exc:
            logger.error("Usage log insert failed", extra={"account_id": account_id, "category": category.value})
            await DeadLetterService.capture(db, USAGE_EVENT_TASK, exc, {
                "account_id": account_id,
                "category": category.value,
                "input": input,
                "output": output,
                "model": model,
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
                "cost_inr": cost_inr,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })

    @staticmethod
    async def _increment_aggregates(
        db: AsyncSession,
        category: UsageCategory,
        usage: TokenUsage,
        cost_inr: float
    ) -> None:
        try:
            await db.execute(_aggregate_upsert(db.get_bind().dialect.name, category.value, usage, cost_inr))
            await db.commit()
        except SQLAlchemyError as exc:
            logger.error("Usage aggregate increment failed", extra={"category": category.value})
            await DeadLetterService.capture(db, USAGE_AGGREGATE_TASK, exc, {
                "category": category.value,
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
                "cost_inr": cost_inr,
            })

    @staticmethod
    async def get_usage_stats(
        db: AsyncSession,
        category: Optional[str] = "all",
        page: int = 1,
        limit: int = 50
    ) -> UsageStats:
        """
        Recent log page plus permanent totals.

        items/total cover only the TTL window and shrink as rows expire;
        totals come from the aggregate row ("_all" for every category)
        and never shrink.
        """
        usage_category = parse_category_filter(category)

        filters = [UsageEvent.created_at >= usage_window_start()]
        if usage_category is not None:
            filters.append(UsageEvent.category == usage_category)

        result = await db.execute(
            select(UsageEvent, Account.username, Account.phone)
            .outerjoin(Account, Account.id == UsageEvent.account_id)
            .where(*filters)
            .order_by(desc(UsageEvent.created_at), desc(UsageEvent.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            {
                "id": event.id,
                "user": {"id": event.account_id, "username": username, "phone": phone},
                "type": event.category.value,
                "input": event.input,
                "output": event.output,
                "model": event.model,
                "prompt_tokens": event.prompt_tokens,
                "completion_tokens": event.completion_tokens,
                "total_tokens": event.total_tokens,
                "cost_inr": event.cost_inr,
                "created_at": event.created_at,
            }
            for event, username, phone in result.all()
        ]

        total = await db.scalar(select(func.count(UsageEvent.id)).where(*filters))

        aggregate_key = usage_category.value if usage_category else ALL_CATEGORIES_KEY
        aggregate = await db.scalar(
            select(UsageAggregate).where(UsageAggregate.category == aggregate_key)
        )
        totals = UsageTotals()
        if aggregate is not None:
            totals = UsageTotals(
                cost_inr=round(aggregate.total_cost_inr or 0.0, 4),
                tokens=aggregate.total_tokens or 0,
                requests=aggregate.total_requests or 0
            )

        return UsageStats(items=items, total=total or 0, page=page, totals=totals)

    @staticmethod
    async def get_aggregates(db: AsyncSession) -> Dict[str, UsageAggregate]:
        result = await db.execute(select(UsageAggregate))
        return {row.category: row for row in result.scalars().all()}

    @staticmethod
    async def get_account_history(
        db: AsyncSession,
        account_id: int,
        category: Optional[str] = None,
        limit: int = 50
    ) -> List[UsageEvent]:
        """The caller's own generations still inside the window, newest first."""
        usage_category = parse_category_filter(category)

        query = select(UsageEvent).where(
            UsageEvent.account_id == account_id,
            UsageEvent.created_at >= usage_window_start()
        )
        if usage_category is not None:
            query = query.where(UsageEvent.category == usage_category)

        result = await db.execute(
            query.order_by(desc(UsageEvent.created_at), desc(UsageEvent.id)).limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def purge_expired_events(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Delete log rows older than the window. Aggregates are untouched."""
        result = await db.execute(
            delete(UsageEvent).where(UsageEvent.created_at < usage_window_start(now))
        )
        await db.commit()
        return result.rowcount or 0


async def run_usage_purge_loop(session_factory: async_sessionmaker, interval_seconds: int) -> None:
    """Background loop started by the app lifespan; cancelled on shutdown."""
    while True:
        try:
            async with session_factory() as db:
                purged = await UsageAccountingService.purge_expired_events(db)
            if purged:
                logger.info("Purged expired usage events", extra={"rows": purged})
        except SQLAlchemyError:
            logger.exception("Usage log purge failed")
        await asyncio.sleep(interval_seconds)


class UsageRecorder:
    """
    Request-scoped hook for AI generation routes.

    Usage:
        @router.post("/generate-bios")
        async def generate_bios(..., recorder: UsageRecorder = Depends(get_usage_recorder)):
            ...
            recorder.record(account_id, "bio", payload, bios, model, TokenUsage(...), cost)
            return bios

    The write runs after the response is sent.
    """

    def __init__(self, background_tasks: BackgroundTasks, session_factory: async_sessionmaker):
        self.background_tasks = background_tasks
        self.session_factory = session_factory

    def record(
        self,
        account_id: int,
        category: str,
        input: Any,
        output: Any,
        model: Optional[str],
        token_usage: Union[TokenUsage, Mapping[str, Any]],
        cost_inr: float
    ) -> None:
        self.background_tasks.add_task(
            UsageAccountingService.record_usage,
            self.session_factory,
            account_id,
            category,
            input,
            output,
            model,
            token_usage,
            cost_inr
        )


def get_usage_recorder(
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> UsageRecorder:
    return UsageRecorder(background_tasks, session_factory)


@replay_handler(USAGE_EVENT_TASK)
async def _replay_usage_event(db: AsyncSession, payload: Dict[str, Any]) -> None:
    created_at = datetime.fromisoformat(payload["created_at"])
    if created_at < usage_window_start():
        # Would be purged on arrival; aggregates were written separately
        return
    db.add(UsageEvent(
        account_id=payload["account_id"],
        category=UsageCategory(payload["category"]),
        input=payload.get("input"),
        output=payload.get("output"),
        model=payload.get("model"),
        prompt_tokens=payload.get("prompt_tokens", 0),
        completion_tokens=payload.get("completion_tokens", 0),
        total_tokens=payload.get("total_tokens", 0),
        cost_inr=payload.get("cost_inr", 0.0),
        created_at=created_at
    ))


@replay_handler(USAGE_AGGREGATE_TASK)
async def _replay_usage_aggregate(db: AsyncSession, payload: Dict[str, Any]) -> None:
    usage = TokenUsage(
        prompt_tokens=payload.get("prompt_tokens", 0),
        completion_tokens=payload.get("completion_tokens", 0),
        total_tokens=payload.get("total_tokens")
    )
    await db.execute(_aggregate_upsert(
        db.get_bind().dialect.name,
        payload["category"],
        usage,
        payload.get("cost_inr", 0.0)
    ))
