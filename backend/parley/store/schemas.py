"""Pydantic records held by the persistence store.

Timestamps are float seconds since the epoch, the same representation the
socket events carry.
"""
import time
import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    return str(uuid.uuid4())


class MessageStatus(str, Enum):
    """Delivery status of a message. Only ever moves forward.

    Attributes:
        SENT: Persisted, not yet fanned out.
        DELIVERED: Fanned out to the room.
        READ: At least one reader has acknowledged it.
    """
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    username: str
    email: str
    password_hash: str = Field(default="", exclude=True)
    created_at: float = Field(default_factory=time.time)


class Room(BaseModel):
    """A named channel. Names are globally unique."""
    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)


class Reaction(BaseModel):
    user_id: str
    emoji: str
    ts: float = Field(default_factory=time.time)


class ReadReceipt(BaseModel):
    user_id: str
    read_at: float = Field(default_factory=time.time)


class Message(BaseModel):
    """The central entity. Never physically removed; see ``deleted_at``."""
    id: str = Field(default_factory=new_id)
    room_id: str
    sender_id: str
    content: str
    created_at: float = Field(default_factory=time.time)
    file_id: Optional[str] = None
    reply_to: Optional[str] = None
    thread_id: Optional[str] = None
    mentions: List[str] = Field(default_factory=list)
    status: MessageStatus = MessageStatus.SENT
    reactions: List[Reaction] = Field(default_factory=list)
    read_by: List[ReadReceipt] = Field(default_factory=list)
    edited_at: Optional[float] = None
    deleted_at: Optional[float] = None
    deleted_by: Optional[str] = None
    pinned: bool = False
    pinned_by: Optional[str] = None
    pinned_at: Optional[float] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Favorite(BaseModel):
    user_id: str
    message_id: str
    created_at: float = Field(default_factory=time.time)


class StoredFile(BaseModel):
    """Metadata for an uploaded file; the bytes live in the blob store."""
    id: str = Field(default_factory=new_id)
    room_id: str
    uploaded_by: str
    original_filename: str
    reference: str
    mime_type: str
    size_bytes: int
    uploaded_at: float = Field(default_factory=time.time)
