"""
Payment Schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, Union


class PaymentVerifyRequest(BaseModel):
    """
    Client-relayed Razorpay checkout callback.

    Field names follow the gateway's callback payload.
    """
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    amount_rupees: Optional[Union[float, str]] = Field(default=None, alias="amountRupees")

    class Config:
        populate_by_name = True
