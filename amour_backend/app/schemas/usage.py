"""
Usage Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional, List


class UsageUser(BaseModel):
    id: int
    username: Optional[str] = None
    phone: Optional[str] = None


class QueryLogItem(BaseModel):
    """One generation from the recent (48h) log."""
    id: int
    user: UsageUser
    type: str
    input: Any = None
    output: Any = None
    model: Optional[str] = None
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_inr: float
    created_at: datetime


class UsageTotalsResponse(BaseModel):
    """All-time totals from the permanent aggregate."""
    cost_inr: float = Field(serialization_alias="costINR")
    tokens: int
    requests: int


class QueryLogPage(BaseModel):
    items: List[QueryLogItem]
    total: int
    page: int
    totals: UsageTotalsResponse


class QueryLogEnvelope(BaseModel):
    success: bool = True
    data: QueryLogPage


class HistoryItem(BaseModel):
    id: int
    type: str
    input: Any = None
    output: Any = None
    created_at: datetime


class HistoryEnvelope(BaseModel):
    success: bool = True
    data: List[HistoryItem]
