"""Pydantic schemas for registration, login and verified identities."""
from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register.

    Usernames are restricted to word characters so every user can be
    addressed with an ``@username`` mention.
    """
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^\w+$")
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class Identity(BaseModel):
    """Who a verified credential belongs to. Tags a session for its whole life."""
    user_id: str
    username: str
    is_moderator: bool = False
