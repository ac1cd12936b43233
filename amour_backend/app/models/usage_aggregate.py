"""
Usage aggregate database model.

Permanent per-category counters for AI usage, plus the "_all" total.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime
from sqlalchemy.sql import func
from amour_backend.app.db.session import Base


class UsageAggregate(Base):
    """
    Usage aggregate model.

    One row per category key. Rows are created lazily by upsert and only
    ever incremented.
    """
    __tablename__ = "usage_aggregates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    category = Column(String(50), unique=True, index=True, nullable=False)

    total_requests = Column(Integer, nullable=False, default=0)
    total_prompt_tokens = Column(Integer, nullable=False, default=0)
    total_completion_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    total_cost_inr = Column(Float, nullable=False, default=0.0)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<UsageAggregate(category='{self.category}', requests={self.total_requests})>"
