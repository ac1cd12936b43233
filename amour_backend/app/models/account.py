"""
Account database model.

A paying end user and the authoritative credit balance.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, CheckConstraint
from sqlalchemy.sql import func
from amour_backend.app.core.config import settings
from amour_backend.app.db.session import Base
from amour_backend.app.models.enums import AccountRole


class Account(Base):
    """
    Account model.

    `credits` is mutated only through the credit ledger, which increments it
    in the same transaction that records the applied order.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, default="User")
    phone = Column(String(20), unique=True, index=True, nullable=False)

    credits = Column(Integer, nullable=False, default=settings.starting_credits)

    # Referral code used at signup, kept even when it matched no influencer
    referred_by = Column(String(64), nullable=True)

    role = Column(Enum(AccountRole), default=AccountRole.USER, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_accounts_credits_non_negative"),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, username='{self.username}', credits={self.credits})>"
