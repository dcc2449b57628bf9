"""Pydantic schemas for room endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class RoomCreate(BaseModel):
    """Request body for POST /rooms."""
    name: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
