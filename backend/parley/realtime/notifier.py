"""Turns domain results into socket events.

The Session Manager and the HTTP routers both announce through here, so a
mutation made over HTTP reaches the room exactly like its socket twin.

Outbound events:
    receive-message       {message, sender}
    mention               {message_id, room_id, content, sender_id, sender, ts}
    message-delivered     {message_id, status}
    message-read          {message_id, user_id, read_at, status}
    reaction-added        {message_id, user_id, emoji, reactions}
    reaction-removed      {message_id, user_id, emoji, reactions}
    message-edited        {message}
    message-deleted       {message_id, deleted_by, deleted_at}
    message-pinned        {message_id, pinned, pinned_by, pinned_at}
    message-unpinned      {message_id, pinned}
    user-typing           {room_id, user_id, username}
    user-stopped-typing   {room_id, user_id, username}
    user-joined           {room_id, user_id, username}
    user-left             {room_id, user_id, username}
    file-received         {room_id, user_id, username, file_ref, file_name, ts}
    room-created          {room}          (every connection)
    error                 {event, code, error}
"""
import logging
import time
from typing import Optional

from parley.errors import ChatError
from parley.store.schemas import Message, Room

from .broadcaster import Broadcaster
from .typing_tracker import TypingEntry

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, broadcaster: Broadcaster) -> None:
        self._broadcaster = broadcaster

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    async def message_sent(self, message: Message, sender: str) -> None:
        """Fan the new message out to the room and ping every mentioned user."""
        await self._broadcaster.to_room(
            message.room_id, "receive-message", {"message": message, "sender": sender}
        )
        for user_id in message.mentions:
            await self._broadcaster.to_user(user_id, "mention", {
                "message_id": message.id,
                "room_id": message.room_id,
                "content": message.content,
                "sender_id": message.sender_id,
                "sender": sender,
                "ts": message.created_at,
            })

    async def message_delivered(self, message: Message) -> None:
        await self._broadcaster.to_room(message.room_id, "message-delivered", {
            "message_id": message.id,
            "status": message.status,
        })

    async def message_read(self, message: Message, user_id: str) -> None:
        read_at = next((r.read_at for r in message.read_by if r.user_id == user_id), None)
        await self._broadcaster.to_room(message.room_id, "message-read", {
            "message_id": message.id,
            "user_id": user_id,
            "read_at": read_at,
            "status": message.status,
        })

    async def reaction_added(self, message: Message, user_id: str, emoji: str) -> None:
        await self._reaction_event("reaction-added", message, user_id, emoji)

    async def reaction_removed(self, message: Message, user_id: str, emoji: str) -> None:
        await self._reaction_event("reaction-removed", message, user_id, emoji)

    async def message_edited(self, message: Message) -> None:
        await self._broadcaster.to_room(message.room_id, "message-edited", {"message": message})

    async def message_deleted(self, message: Message) -> None:
        await self._broadcaster.to_room(message.room_id, "message-deleted", {
            "message_id": message.id,
            "deleted_by": message.deleted_by,
            "deleted_at": message.deleted_at,
        })

    async def message_pinned(self, message: Message) -> None:
        """Announces ``message-pinned`` or ``message-unpinned`` from the current flag."""
        if message.pinned:
            event = "message-pinned"
            payload = {
                "message_id": message.id,
                "pinned": True,
                "pinned_by": message.pinned_by,
                "pinned_at": message.pinned_at,
            }
        else:
            event = "message-unpinned"
            payload = {"message_id": message.id, "pinned": False}
        await self._broadcaster.to_room(message.room_id, event, payload)

    async def _reaction_event(self, event: str, message: Message, user_id: str, emoji: str) -> None:
        await self._broadcaster.to_room(message.room_id, event, {
            "message_id": message.id,
            "user_id": user_id,
            "emoji": emoji,
            "reactions": message.reactions,
        })

    # -----------------------------------------------------------------------
    # Presence
    # -----------------------------------------------------------------------

    async def user_typing(
        self, room_id: str, user_id: str, username: str, exclude_session_id: Optional[str] = None
    ) -> None:
        await self._broadcaster.to_room(
            room_id, "user-typing", _who(room_id, user_id, username), exclude_session_id
        )

    async def user_stopped_typing(
        self, room_id: str, user_id: str, username: str, exclude_session_id: Optional[str] = None
    ) -> None:
        await self._broadcaster.to_room(
            room_id, "user-stopped-typing", _who(room_id, user_id, username), exclude_session_id
        )

    async def typing_expired(self, entry: TypingEntry) -> None:
        await self.user_stopped_typing(entry.room_id, entry.user_id, entry.username, entry.session_id)

    async def user_joined(
        self, room_id: str, user_id: str, username: str, exclude_session_id: Optional[str] = None
    ) -> None:
        await self._broadcaster.to_room(
            room_id, "user-joined", _who(room_id, user_id, username), exclude_session_id
        )

    async def user_left(self, room_id: str, user_id: str, username: str) -> None:
        await self._broadcaster.to_room(room_id, "user-left", _who(room_id, user_id, username))

    async def room_created(self, room: Room) -> None:
        await self._broadcaster.to_all("room-created", {"room": room})

    async def file_received(
        self, room_id: str, user_id: str, username: str, file_ref: str, file_name: str
    ) -> None:
        await self._broadcaster.to_room(room_id, "file-received", {
            "room_id": room_id,
            "user_id": user_id,
            "username": username,
            "file_ref": file_ref,
            "file_name": file_name,
            "ts": time.time(),
        })

    # -----------------------------------------------------------------------
    # Direct replies
    # -----------------------------------------------------------------------

    async def reply(self, session_id: str, event: str, payload: Optional[dict] = None) -> bool:
        return await self._broadcaster.to_session(session_id, event, payload)

    async def error(self, session_id: str, event: Optional[str], error: ChatError) -> bool:
        return await self._broadcaster.to_session(session_id, "error", {
            "event": event,
            "code": error.code,
            "error": error.message,
        })


def _who(room_id: str, user_id: str, username: str) -> dict:
    return {"room_id": room_id, "user_id": user_id, "username": username}
