"""
Account API Endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.dependencies import get_current_user
from amour_backend.app.core.exceptions import AccountNotFoundError
from amour_backend.app.db.session import get_db
from amour_backend.app.schemas.account import AccountResponse
from amour_backend.app.schemas.usage import HistoryEnvelope, HistoryItem
from amour_backend.app.services.accounts import get_account
from amour_backend.app.services.usage_accounting import UsageAccountingService

router = APIRouter(tags=["Accounts"])


@router.get("/accounts/me", response_model=AccountResponse)
async def get_my_account(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current credit balance of the caller."""
    account = await get_account(db, current_user["user_id"])
    if not account:
        raise AccountNotFoundError(current_user["user_id"])
    return account


@router.get("/usage/history", response_model=HistoryEnvelope)
async def get_my_history(
    type: str = Query(None, description="Category filter, or 'all'"),
    limit: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's generations from the last 48 hours, newest first."""
    events = await UsageAccountingService.get_account_history(
        db, current_user["user_id"], category=type, limit=limit
    )
    return HistoryEnvelope(data=[
        HistoryItem(
            id=event.id,
            type=event.category.value,
            input=event.input,
            output=event.output,
            created_at=event.created_at
        )
        for event in events
    ])
