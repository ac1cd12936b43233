"""
Admin Influencer API Endpoints.

Influencer onboarding and payouts.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.config import settings
from amour_backend.app.core.exceptions import PayeeNotFoundError
from amour_backend.app.core.guards import require_admin
from amour_backend.app.db.session import get_db
from amour_backend.app.domain.billing.payout_ledger import PayoutLedger
from amour_backend.app.schemas.influencer import (
    InfluencerCreate, InfluencerEnvelope, InfluencerListEnvelope, InfluencerPage,
    PayoutRequest, PayoutHistoryEnvelope
)
from amour_backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/admin/influencers", tags=["Admin - Influencers"])


@router.post("", response_model=InfluencerEnvelope, status_code=status.HTTP_201_CREATED)
async def create_influencer(
    body: InfluencerCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create an influencer with a generated referral link.
    """
    influencer = await PayoutLedger.create_influencer(
        db,
        name=body.name,
        contact=body.contact,
        referral_count=body.referral_count,
        total_earning=body.total_earning,
        pending_payment=body.pending_payment
    )
    data = InfluencerEnvelope(data=influencer)

    await log_event(
        db=db,
        action=AuditAction.INFLUENCER_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        metadata={"influencer_id": data.data.id, "referral_link": data.data.referral_link}
    )

    return data


@router.get("", response_model=InfluencerListEnvelope)
async def list_influencers(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List influencers, newest first.
    """
    items, total = await PayoutLedger.list_influencers(db, page=page, limit=limit)
    return InfluencerListEnvelope(data=InfluencerPage(items=items, total=total, page=page))


@router.post("/{influencer_id}/pay", response_model=InfluencerEnvelope)
async def pay_influencer(
    body: PayoutRequest,
    influencer_id: int = Path(..., description="Influencer ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Move `amount` from pending payment to total earning.

    400 ERR_INSUFFICIENT_PENDING carries the current pending_payment.
    """
    influencer = await PayoutLedger.payout(
        db,
        influencer_id=influencer_id,
        amount=body.amount,
        payment_method=body.payment_method,
        note=body.note,
        actor_id=current_user["user_id"]
    )
    data = InfluencerEnvelope(data=influencer)

    await log_event(
        db=db,
        action=AuditAction.INFLUENCER_PAID,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        metadata={"influencer_id": influencer_id, "amount": float(body.amount)}
    )

    return data


@router.get("/{influencer_id}/payouts", response_model=PayoutHistoryEnvelope)
async def list_influencer_payouts(
    influencer_id: int = Path(..., description="Influencer ID"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Payout history of one influencer, newest first.
    """
    if await PayoutLedger.get_influencer(db, influencer_id) is None:
        raise PayeeNotFoundError(influencer_id)
    return PayoutHistoryEnvelope(data=await PayoutLedger.list_payouts(db, influencer_id, limit=limit))
