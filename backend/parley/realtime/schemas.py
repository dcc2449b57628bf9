"""Session record and inbound socket event payloads.

Inbound frames are JSON objects ``{"type": <event>, ...payload}``. Payload
keys are accepted in camelCase (``messageId``) or snake_case (``message_id``).
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from parley.auth.schemas import Identity
from parley.store.schemas import new_id


class SessionState(str, Enum):
    """Connection lifecycle: connecting -> authenticated -> disconnected."""
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


@dataclass(eq=False)
class Session:
    """One live socket tagged with the identity it authenticated as.

    Hashes by object identity so it can sit in registry sets.
    """
    identity: Identity
    socket: Any
    id: str = field(default_factory=new_id)
    state: SessionState = SessionState.CONNECTING
    created_at: float = field(default_factory=time.time)

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def username(self) -> str:
        return self.identity.username

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.AUTHENTICATED


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RoomPayload(_Payload):
    """join-room, leave-room, typing-start, typing-stop."""
    room: str = Field(..., min_length=1)


class SendMessagePayload(_Payload):
    room: str = Field(..., min_length=1)
    content: str
    reply_to: Optional[str] = Field(default=None, alias="replyTo")
    file_id: Optional[str] = Field(default=None, alias="fileId")


class MessageRefPayload(_Payload):
    """delete-message, mark-read, pin-message."""
    message_id: str = Field(..., min_length=1, alias="messageId")


class EditMessagePayload(MessageRefPayload):
    content: str


class ReactionPayload(MessageRefPayload):
    """add-reaction, remove-reaction."""
    emoji: str


class FileSharePayload(_Payload):
    room: str = Field(..., min_length=1)
    file_ref: str = Field(..., min_length=1, alias="fileRef")
    file_name: str = Field(..., min_length=1, alias="fileName")


class CreateRoomPayload(_Payload):
    name: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)


class ListRoomsPayload(_Payload):
    """list-rooms carries no fields."""


class FetchMessagesPayload(_Payload):
    room: str = Field(..., min_length=1)
    page: int = 1
    page_size: Optional[int] = Field(default=None, alias="pageSize")
