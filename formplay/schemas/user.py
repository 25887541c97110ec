"""
Pydantic schemas for users and authentication tokens.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    username: Optional[str] = None


class User(BaseModel):
    """Public view of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    name: str
    email: EmailStr


class Partner(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: EmailStr


class UserWithPartner(BaseModel):
    """The current user together with their fixed counterparty."""

    user: User
    partner: Partner
