"""
Payment API Endpoints.

Verifies Razorpay checkout callbacks relayed by the client and credits the
caller's account.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.dependencies import get_current_user
from amour_backend.app.db.session import get_db
from amour_backend.app.domain.billing.credit_ledger import CreditLedger
from amour_backend.app.models.enums import PaymentEventStatus
from amour_backend.app.schemas.payment import PaymentVerifyRequest

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/verify")
async def verify_payment(
    payload: PaymentVerifyRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Verify a payment signature and apply the purchased credits.

    Responses:
    - 400 verified=false: signature did not verify, nothing credited
    - creditsApplied=0: verified, amount not in the price table
    - message=order_already_applied: verified earlier, current balance returned
    - credits: verified and credited, new balance returned
    """
    verification = await CreditLedger.verify_and_credit(
        db,
        account_id=current_user["user_id"],
        order_id=payload.razorpay_order_id,
        payment_id=payload.razorpay_payment_id,
        signature=payload.razorpay_signature,
        amount_rupees=payload.amount_rupees
    )

    if not verification.verified:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "verified": False,
                "error_code": "ERR_SIGNATURE_INVALID",
                "message": "Payment signature verification failed",
                "record": verification.record,
            }
        )

    body = {"success": True, "verified": True, "record": verification.record}

    if verification.status == PaymentEventStatus.NO_CREDIT:
        body["creditsApplied"] = 0
    elif verification.status == PaymentEventStatus.ALREADY_APPLIED:
        body["message"] = "order_already_applied"
        body["credits"] = verification.balance
    else:
        body["credits"] = verification.balance
        body["creditsApplied"] = verification.credits_applied

    return body
