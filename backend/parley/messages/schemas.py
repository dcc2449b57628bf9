"""Pydantic schemas for message and favorite endpoints.

Content length limits are configurable, so they are enforced by the
MessageService rather than here.
"""
from typing import Optional

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    """Request body for POST /messages."""
    room: str = Field(..., min_length=1, description="Room id or name")
    content: str
    reply_to: Optional[str] = Field(default=None, alias="replyTo")
    file_id: Optional[str] = Field(default=None, alias="fileId")

    model_config = {"populate_by_name": True}


class MessageEdit(BaseModel):
    """Request body for PUT /messages/{id}."""
    content: str


class ReactionCreate(BaseModel):
    emoji: str


class FavoriteCreate(BaseModel):
    message_id: str = Field(..., alias="messageId")

    model_config = {"populate_by_name": True}
