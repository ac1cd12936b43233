"""
Account Schemas.
"""

from pydantic import BaseModel


class AccountResponse(BaseModel):
    id: int
    username: str
    credits: int

    class Config:
        from_attributes = True
