"""
Influencer database model.

Payout account for referral partners.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, CheckConstraint
from sqlalchemy.sql import func
from amour_backend.app.db.session import Base


class Influencer(Base):
    """
    Influencer model.

    pending_payment moves to total_earning only through the payout ledger's
    guarded update. referral_count is bumped independently on signup.
    """
    __tablename__ = "influencers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    contact = Column(String(100), nullable=True)

    referral_link = Column(String(64), unique=True, index=True, nullable=False)
    referral_count = Column(Integer, nullable=False, default=0)

    # Financials
    pending_payment = Column(Float, nullable=False, default=0.0)
    total_earning = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("pending_payment >= 0", name="ck_influencers_pending_non_negative"),
    )

    def __repr__(self):
        return f"<Influencer(id={self.id}, name='{self.name}', pending={self.pending_payment})>"
