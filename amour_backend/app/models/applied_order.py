"""
Applied order database model.

Append-only index of payment orders already credited to an account.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from amour_backend.app.db.session import Base


class AppliedOrder(Base):
    """
    Applied order model.

    The unique (account_id, order_id) key is the idempotency guard: a second
    insert for the same pair fails and takes the balance increment down with it.
    NO updates or deletions allowed.
    """
    __tablename__ = "applied_orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)
    order_id = Column(String(64), nullable=False)
    credits_added = Column(Integer, nullable=False)

    applied_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('account_id', 'order_id', name='uq_applied_orders_account_order'),
    )

    def __repr__(self):
        return f"<AppliedOrder(account_id={self.account_id}, order_id='{self.order_id}')>"
