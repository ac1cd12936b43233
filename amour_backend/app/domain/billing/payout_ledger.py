"""
Payout Ledger (Domain Logic).

Moves influencer money from pending_payment to total_earning with a single
guarded update, and keeps the referral counter.
"""

import logging
import math
import secrets
import string
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, desc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.exceptions import (
    InvalidAmountError,
    InsufficientPendingError,
    PayeeNotFoundError,
)
from amour_backend.app.models.influencer import Influencer
from amour_backend.app.models.payout_history import PayoutHistory
from amour_backend.app.services.dead_letter import DeadLetterService, replay_handler

logger = logging.getLogger("amour.payouts")

PAYOUT_HISTORY_TASK = "payout_history_append"

REFERRAL_PREFIX = "influ-"
REFERRAL_POSTFIX = "2026"
REFERRAL_CODE_LENGTH = 8
_REFERRAL_ALPHABET = string.ascii_letters + string.digits


def generate_referral_link() -> str:
    """Random referral code, e.g. "influ-aZ3k9QpX2026"."""
    body = "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))
    return f"{REFERRAL_PREFIX}{body}{REFERRAL_POSTFIX}"


def parse_amount(amount: Any) -> float:
    """
    Coerce a payout amount to a positive finite float.

    Raises:
        InvalidAmountError: non-numeric, non-finite or <= 0
    """
    if amount is None or isinstance(amount, bool):
        raise InvalidAmountError(amount)
    try:
        numeric = float(amount)
    except (TypeError, ValueError):
        raise InvalidAmountError(amount)
    if not math.isfinite(numeric) or numeric <= 0:
        raise InvalidAmountError(amount)
    return numeric


class PayoutLedger:

    @staticmethod
    async def create_influencer(
        db: AsyncSession,
        name: str,
        contact: Optional[str] = None,
        referral_count: int = 0,
        total_earning: float = 0.0,
        pending_payment: float = 0.0,
        max_attempts: int = 5
    ) -> Influencer:
        """Create an influencer with a fresh unique referral link."""
        for attempt in range(1, max_attempts + 1):
            influencer = Influencer(
                name=name,
                contact=contact,
                referral_link=generate_referral_link(),
                referral_count=referral_count,
                total_earning=total_earning,
                pending_payment=pending_payment
            )
            db.add(influencer)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.warning("Referral link collision", extra={"attempt": attempt})
                continue
            await db.refresh(influencer)
            return influencer

        raise RuntimeError("Could not allocate a unique referral link")

    @staticmethod
    async def list_influencers(db: AsyncSession, page: int = 1, limit: int = 50) -> Tuple[List[Influencer], int]:
        """Newest first, with the unfiltered total."""
        result = await db.execute(
            select(Influencer)
            .order_by(desc(Influencer.created_at), desc(Influencer.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total = await db.scalar(select(func.count(Influencer.id)))
        return result.scalars().all(), total or 0

    @staticmethod
    async def get_influencer(db: AsyncSession, influencer_id: int) -> Optional[Influencer]:
        result = await db.execute(
            select(Influencer)
            .where(Influencer.id == influencer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def payout(
        db: AsyncSession,
        influencer_id: int,
        amount: Any,
        payment_method: str = "manual",
        note: str = "",
        actor_id: Optional[int] = None
    ) -> Influencer:
        """
        Pay an influencer out of their pending balance.

        Flow:
        1. Validate amount (before touching the store)
        2. Guarded update: pending -= amount, earned += amount
           WHERE pending_payment >= amount (committed alone)
        3. On a miss, read once to tell "missing" from "insufficient"
        4. Append PayoutHistory (best effort, never rolls back step 2)

        Raises:
            InvalidAmountError, PayeeNotFoundError, InsufficientPendingError
        """
        numeric = parse_amount(amount)

        result = await db.execute(
            update(Influencer)
            .where(Influencer.id == influencer_id, Influencer.pending_payment >= numeric)
            .values(
                pending_payment=Influencer.pending_payment - numeric,
                total_earning=Influencer.total_earning + numeric,
                updated_at=func.now()
            )
            .returning(Influencer.id)
            .execution_options(synchronize_session=False)
        )
        updated_id = result.scalar_one_or_none()
        await db.commit()

        if updated_id is None:
            existing = await PayoutLedger.get_influencer(db, influencer_id)
            if existing is None:
                raise PayeeNotFoundError(influencer_id)
            raise InsufficientPendingError(pending_payment=existing.pending_payment, requested=numeric)

        logger.info(
            "Influencer paid",
            extra={"influencer_id": influencer_id, "amount": numeric, "admin_id": actor_id}
        )

        await PayoutLedger._append_history(db, {
            "influencer_id": influencer_id,
            "amount": numeric,
            "payment_method": payment_method or "manual",
            "note": note or "",
            "admin_id": actor_id,
        })

        return await PayoutLedger.get_influencer(db, influencer_id)

    @staticmethod
    async def _append_history(db: AsyncSession, payload: Dict[str, Any]) -> Optional[PayoutHistory]:
        try:
            entry = PayoutHistory(**payload)
            db.add(entry)
            await db.commit()
            return entry
        except SQLAlchemyError as exc:
            logger.error(
                "Payout history append failed; ledger already updated",
                extra={"influencer_id": payload["influencer_id"], "amount": payload["amount"]}
            )
            await DeadLetterService.capture(db, PAYOUT_HISTORY_TASK, exc, payload)
            return None

    @staticmethod
    async def list_payouts(db: AsyncSession, influencer_id: int, limit: int = 50) -> List[PayoutHistory]:
        result = await db.execute(
            select(PayoutHistory)
            .where(PayoutHistory.influencer_id == influencer_id)
            .order_by(desc(PayoutHistory.created_at), desc(PayoutHistory.id))
            .limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def record_referral(db: AsyncSession, referral_code: Optional[str]) -> bool:
        """
        Count one signup against the influencer owning referral_code.

        Single atomic increment, independent of account creation.

        Returns:
            True if an influencer matched the code
        """
        if not referral_code:
            return False

        result = await db.execute(
            update(Influencer)
            .where(Influencer.referral_link == referral_code)
            .values(referral_count=Influencer.referral_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount > 0


@replay_handler(PAYOUT_HISTORY_TASK)
async def _replay_payout_history(db: AsyncSession, payload: Dict[str, Any]) -> None:
    db.add(PayoutHistory(**payload))
