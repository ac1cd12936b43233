"""
Influencer and payout Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Union


class InfluencerCreate(BaseModel):
    """Schema for creating an influencer."""
    name: str = Field(..., min_length=1, max_length=100)
    contact: Optional[str] = Field(default=None, max_length=100)
    referral_count: int = Field(default=0, ge=0, alias="referralCount")
    total_earning: float = Field(default=0.0, ge=0, alias="totalEarning")
    pending_payment: float = Field(default=0.0, ge=0, alias="pendingPayment")

    class Config:
        populate_by_name = True


class InfluencerResponse(BaseModel):
    """Schema for displaying an influencer."""
    id: int
    name: str
    contact: Optional[str]
    referral_link: str
    referral_count: int
    pending_payment: float
    total_earning: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InfluencerEnvelope(BaseModel):
    success: bool = True
    data: InfluencerResponse


class InfluencerPage(BaseModel):
    items: List[InfluencerResponse]
    total: int
    page: int


class InfluencerListEnvelope(BaseModel):
    success: bool = True
    data: InfluencerPage


class PayoutRequest(BaseModel):
    """
    Body of POST /admin/influencers/{id}/pay.

    amount is range-checked by the payout ledger so that every invalid
    amount gets the same ERR_INVALID_AMOUNT response.
    """
    amount: Union[float, str]
    payment_method: Optional[str] = Field(default="manual", max_length=50, alias="paymentMethod")
    note: Optional[str] = Field(default="", max_length=255)

    class Config:
        populate_by_name = True


class PayoutHistoryResponse(BaseModel):
    id: int
    influencer_id: int
    amount: float
    payment_method: str
    note: Optional[str]
    admin_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class PayoutHistoryEnvelope(BaseModel):
    success: bool = True
    data: List[PayoutHistoryResponse]
