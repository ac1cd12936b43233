"""
Admin Usage API Endpoints.

Query logs for the admin dashboard: the recent 48h log next to permanent totals.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.config import settings
from amour_backend.app.core.guards import require_admin
from amour_backend.app.db.session import get_db
from amour_backend.app.schemas.usage import QueryLogEnvelope, QueryLogPage, UsageTotalsResponse
from amour_backend.app.services.usage_accounting import UsageAccountingService

router = APIRouter(prefix="/admin", tags=["Admin - Usage"])


@router.get("/query-logs", response_model=QueryLogEnvelope)
async def list_query_logs(
    type: str = Query("all", description="Category filter, or 'all'"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Recent generations (paginated, newest first) and all-time totals.

    `total` counts only rows inside the log window; `totals` are all-time.
    """
    stats = await UsageAccountingService.get_usage_stats(db, category=type, page=page, limit=limit)
    return QueryLogEnvelope(data=QueryLogPage(
        items=stats.items,
        total=stats.total,
        page=stats.page,
        totals=UsageTotalsResponse(
            cost_inr=stats.totals.cost_inr,
            tokens=stats.totals.tokens,
            requests=stats.totals.requests
        )
    ))
