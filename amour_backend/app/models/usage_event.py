"""
Usage event database model.

Detailed, short-lived log of AI generation calls.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, JSON, Enum, ForeignKey, Index
from sqlalchemy.sql import func
from amour_backend.app.db.session import Base
from amour_backend.app.models.enums import UsageCategory


class UsageEvent(Base):
    """
    Usage event model.

    Rows older than the usage log TTL (48h) are hidden from reads and
    purged. Aggregates never depend on these rows surviving.
    """
    __tablename__ = "usage_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)
    category = Column(Enum(UsageCategory), nullable=False)

    input = Column(JSON, nullable=True)
    output = Column(JSON, nullable=True)
    model = Column(String(100), nullable=True)

    prompt_tokens = Column(Integer, nullable=False, default=0)
    completion_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    cost_inr = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('ix_usage_events_category_created', 'category', 'created_at'),
    )

    def __repr__(self):
        return f"<UsageEvent(id={self.id}, category='{self.category.value}', tokens={self.total_tokens})>"
