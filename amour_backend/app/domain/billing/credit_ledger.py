"""
Credit Ledger (Domain Logic).

Applies verified payments to account balances exactly once per order and
records every verification attempt as a PaymentEvent.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.config import settings
from amour_backend.app.core.exceptions import AccountNotFoundError
from amour_backend.app.domain.billing.pricing import credits_for_amount
from amour_backend.app.domain.billing.signature import verify_payment_signature
from amour_backend.app.models.account import Account
from amour_backend.app.models.applied_order import AppliedOrder
from amour_backend.app.models.enums import PaymentEventStatus
from amour_backend.app.models.payment_event import PaymentEvent
from amour_backend.app.services.dead_letter import DeadLetterService, replay_handler

logger = logging.getLogger("amour.payments")

PAYMENT_EVENT_TASK = "payment_event_append"


class CreditOutcome(str, enum.Enum):
    CREDITED = "CREDITED"
    ALREADY_APPLIED = "ALREADY_APPLIED"
    NO_CREDIT = "NO_CREDIT"


@dataclass
class CreditResult:
    outcome: CreditOutcome
    balance: Optional[int]
    credits_applied: int = 0


@dataclass
class PaymentVerification:
    verified: bool
    status: PaymentEventStatus
    record: Dict[str, Any] = field(default_factory=dict)
    credits_applied: int = 0
    balance: Optional[int] = None


def _amount_as_float(amount: Any) -> Optional[float]:
    if amount is None or isinstance(amount, bool):
        return None
    try:
        return float(amount)
    except (TypeError, ValueError):
        return None


class CreditLedger:

    @staticmethod
    async def apply_credit(
        db: AsyncSession,
        account_id: int,
        order_id: str,
        credits_to_add: int
    ) -> CreditResult:
        """
        Add credits for an order, at most once per (account, order).

        Flow (single transaction):
        1. Increment the balance (row lock on the account)
        2. Insert the (account, order) pair into applied_orders
        3. Commit. A unique violation on step 2 rolls back step 1.

        Returns:
            CreditResult with CREDITED, ALREADY_APPLIED (current balance,
            nothing added) or NO_CREDIT (nothing to add, store untouched)

        Raises:
            AccountNotFoundError: no account with this id
        """
        if credits_to_add <= 0:
            return CreditResult(outcome=CreditOutcome.NO_CREDIT, balance=None)

        try:
            result = await db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(credits=Account.credits + credits_to_add)
                .returning(Account.credits)
            )
            new_balance = result.scalar_one_or_none()

            if new_balance is None:
                await db.rollback()
                raise AccountNotFoundError(account_id)

            db.add(AppliedOrder(
                account_id=account_id,
                order_id=order_id,
                credits_added=credits_to_add
            ))
            await db.commit()
        except IntegrityError:
            await db.rollback()
            current = await db.scalar(select(Account.credits).where(Account.id == account_id))
            if current is None:
                raise AccountNotFoundError(account_id)

            logger.info(
                "Order already applied",
                extra={"account_id": account_id, "order_id": order_id}
            )
            return CreditResult(outcome=CreditOutcome.ALREADY_APPLIED, balance=current)

        logger.info(
            "Credits applied",
            extra={"account_id": account_id, "order_id": order_id, "credits": credits_to_add}
        )
        return CreditResult(
            outcome=CreditOutcome.CREDITED,
            balance=new_balance,
            credits_applied=credits_to_add
        )

    @staticmethod
    async def verify_and_credit(
        db: AsyncSession,
        account_id: int,
        order_id: str,
        payment_id: str,
        signature: str,
        amount_rupees: Any = None,
        secret: Optional[str] = None
    ) -> PaymentVerification:
        """
        Verify a client-relayed Razorpay confirmation and credit the account.

        Every attempt ends in one terminal state, recorded as a PaymentEvent:
        REJECTED, CREDITED, ALREADY_APPLIED, NO_CREDIT or ACCOUNT_NOT_FOUND.

        Raises:
            AccountNotFoundError: signature valid but account missing
                (the event is recorded first, the record is in details)
        """
        received_at = datetime.now(timezone.utc)
        verified = verify_payment_signature(
            order_id, payment_id, signature,
            secret if secret is not None else settings.razorpay_key_secret
        )

        event = PaymentEvent(
            razorpay_order_id=order_id,
            razorpay_payment_id=payment_id,
            razorpay_signature=signature,
            verified=verified,
            amount_rupees=_amount_as_float(amount_rupees),
            account_id=account_id,
            credits_applied=0,
            received_at=received_at
        )

        if not verified:
            logger.warning(
                "Payment signature verification failed",
                extra={"order_id": order_id, "payment_id": payment_id}
            )
            event.status = PaymentEventStatus.REJECTED
            record = await CreditLedger._record_event(db, event)
            return PaymentVerification(verified=False, status=event.status, record=record)

        try:
            result = await CreditLedger.apply_credit(
                db, account_id, order_id, credits_for_amount(amount_rupees)
            )
        except AccountNotFoundError as exc:
            event.status = PaymentEventStatus.ACCOUNT_NOT_FOUND
            event.account_id = None
            exc.details["verified"] = True
            exc.details["record"] = await CreditLedger._record_event(db, event)
            raise

        event.status = PaymentEventStatus(result.outcome.value)
        event.credits_applied = result.credits_applied
        record = await CreditLedger._record_event(db, event)

        return PaymentVerification(
            verified=True,
            status=event.status,
            record=record,
            credits_applied=result.credits_applied,
            balance=result.balance
        )

    @staticmethod
    async def _record_event(db: AsyncSession, event: PaymentEvent) -> Dict[str, Any]:
        """Append the PaymentEvent. The credit outcome stands even if this fails."""
        record = {
            "id": None,
            "razorpay_order_id": event.razorpay_order_id,
            "razorpay_payment_id": event.razorpay_payment_id,
            "razorpay_signature": event.razorpay_signature,
            "verified": event.verified,
            "amountRupees": event.amount_rupees,
            "status": event.status.value,
            "receivedAt": event.received_at.isoformat(),
        }

        try:
            db.add(event)
            await db.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "Payment event append failed",
                extra={"order_id": event.razorpay_order_id, "status": event.status.value}
            )
            await DeadLetterService.capture(db, PAYMENT_EVENT_TASK, exc, {
                **record,
                "account_id": event.account_id,
                "credits_applied": event.credits_applied,
            })
            return record

        record["id"] = event.id
        return record


@replay_handler(PAYMENT_EVENT_TASK)
async def _replay_payment_event(db: AsyncSession, payload: Dict[str, Any]) -> None:
    db.add(PaymentEvent(
        razorpay_order_id=payload["razorpay_order_id"],
        razorpay_payment_id=payload["razorpay_payment_id"],
        razorpay_signature=payload["razorpay_signature"],
        verified=payload["verified"],
        amount_rupees=payload.get("amountRupees"),
        account_id=payload.get("account_id"),
        status=PaymentEventStatus(payload["status"]),
        credits_applied=payload.get("credits_applied") or 0,
        received_at=datetime.fromisoformat(payload["receivedAt"])
    ))
