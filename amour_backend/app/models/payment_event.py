"""
Payment event database model.

Immutable audit record of one payment verification attempt.
"""

from sqlalchemy import Column, Integer, Float, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from amour_backend.app.db.session import Base
from amour_backend.app.models.enums import PaymentEventStatus


class PaymentEvent(Base):
    """
    Payment event model.

    Written once, in its terminal state, whether or not credits were applied.
    No updated_at: events are never mutated.
    """
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    razorpay_order_id = Column(String(64), nullable=False, index=True)
    razorpay_payment_id = Column(String(64), nullable=False)
    razorpay_signature = Column(String(128), nullable=False)
    verified = Column(Boolean, nullable=False)
    amount_rupees = Column(Float, nullable=True)

    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=True, index=True)
    status = Column(Enum(PaymentEventStatus), nullable=False, index=True)
    credits_applied = Column(Integer, nullable=False, default=0)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaymentEvent(id={self.id}, order='{self.razorpay_order_id}', status='{self.status.value}')>"
