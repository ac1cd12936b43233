"""
Payout history database model.

Immutable record of completed influencer payouts.
"""

from sqlalchemy import Column, Integer, Float, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from amour_backend.app.db.session import Base


class PayoutHistory(Base):
    """
    Payout history model.

    One row per successful transfer from pending_payment to total_earning.
    NO updates or deletions allowed.
    """
    __tablename__ = "payout_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    influencer_id = Column(Integer, ForeignKey('influencers.id'), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    payment_method = Column(String(50), nullable=False, default="manual")
    note = Column(String(255), nullable=True)
    admin_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PayoutHistory(id={self.id}, influencer_id={self.influencer_id}, amount={self.amount})>"
